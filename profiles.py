"""Webwrap – profile directory preparation and migration.

Runs on every launch, before the engine starts. On an engine change the
profile is cleaned so the new engine can read it; on a reset it's put back
into a consistent first-run state. When a welcome notice is pending the
page is also bookmarked in the app's own bookmark folder.

Nothing destructive happens unless the profile path is inside both the
data root and the user's home directory.
"""

import glob
import json
import logging
import os
import shutil

import fileops
from config import (
    MASTER_PREFS_SOURCE_PATH,
    POLL_INTERVAL,
    PREFS_APPEAR_TIMEOUT,
    RUNTIME_EXTENSION_IDS,
    USER_SUPPORT_PATH,
    WELCOME_BOOKMARK_FOLDER_GUID,
)
from errors import FileOpError
from models import engine_family_switch
from status import combine_errors

logger = logging.getLogger(__name__)

# kept in Default/ when switching to or from an incompatible engine
PRESERVED_PROFILE_ITEMS = (
    "Bookmarks",
    "databases",
    "Favicons",
    "History",
    "Local Extension Settings",
)

# bookmark results reported to the welcome page
BOOKMARK_ADDED = 1
BOOKMARK_NEW_FILE = 2
BOOKMARK_ERROR = 3
BOOKMARK_FOLDER_GONE = 4
BOOKMARK_WRITE_ERROR = 5


def check_profile_path(profile_path, data_root, home=None):
    """Raise SafetyError unless the profile is inside the data root and home."""
    home = home or os.path.expanduser("~")
    fileops.check_inside(profile_path, [data_root, home], "profile directory")


# ── Engine change ────────────────────────────────────────────────────────────

def migrate_profile(profile_path, old_engine, new_engine, harvester=None):
    """Clean the profile for a switch from *old_engine* to *new_engine*.

    Returns (delete errors, extension scan or None).
    """
    errors = fileops.remove_children(
        profile_path, keep=("Default",), what="top-level files"
    )
    default = os.path.join(profile_path, "Default")
    scan = None

    if engine_family_switch(old_engine, new_engine):
        logger.debug(
            "Clearing profile directory for engine switch between incompatible"
            " engines %s and %s.", old_engine.bundle_id, new_engine.bundle_id,
        )
        if harvester is not None:
            scan = harvester.scan([default])
        errors += fileops.remove_children(
            default, keep=PRESERVED_PROFILE_ITEMS, what="browser profile files"
        )
    else:
        logger.debug(
            "Clearing profile directory for engine switch between compatible"
            " engines %s and %s.", old_engine.bundle_id, new_engine.bundle_id,
        )
        for path in glob.glob(os.path.join(glob.escape(default), "Login Data*")):
            try:
                fileops.remove_path(path)
            except OSError as exc:
                logger.error("Error deleting login data: %s", exc)
                errors.append("Error deleting login data.")
    return errors, scan


# ── First run ────────────────────────────────────────────────────────────────

def reset_profile(profile_path):
    """Put First Run and Preferences into a consistent missing state."""
    errors = []
    for path in (os.path.join(profile_path, "First Run"),
                 os.path.join(profile_path, "Default", "Preferences")):
        try:
            if os.path.lexists(path):
                os.unlink(path)
        except OSError as exc:
            logger.error("Error deleting first-run file '%s': %s", path, exc)
            errors.append("Error deleting first-run files.")
            break

    local_state = os.path.join(profile_path, "Local State")
    if not os.path.exists(local_state):
        try:
            fileops.write_text(local_state, "{}\n", "Local State file")
        except FileOpError as exc:
            # ignored; the engine just shows its own first-run dialog
            logger.warning("%s", exc.message)
    return errors


def runtime_extension_installed(profile_path):
    exts = os.path.join(profile_path, "Default", "Extensions")
    for ext_id in RUNTIME_EXTENSION_IDS:
        if os.path.isdir(os.path.join(exts, ext_id)):
            logger.debug("Found runtime extension (%s) installed.", ext_id)
            return True
    return False


# ── Bookmarks ────────────────────────────────────────────────────────────────

def _find_folder(node, guid):
    if isinstance(node, dict):
        if node.get("guid") == guid and node.get("type") == "folder":
            return node
        children = node.values()
    elif isinstance(node, list):
        children = node
    else:
        return None
    for child in children:
        found = _find_folder(child, guid)
        if found is not None:
            return found
    return None


def _bookmark(title, url):
    return {"name": title, "type": "url", "url": url}


def new_bookmarks(folder_name, title, url):
    folder = {
        "children": [_bookmark(title, url)],
        "guid": WELCOME_BOOKMARK_FOLDER_GUID,
        "name": folder_name,
        "type": "folder",
    }
    return {
        "roots": {
            "bookmark_bar": {"children": [folder], "name": "Bookmarks bar", "type": "folder"},
            "other": {"children": [], "name": "Other bookmarks", "type": "folder"},
            "synced": {"children": [], "name": "Mobile bookmarks", "type": "folder"},
        },
        "version": 1,
    }


def add_welcome_bookmark(profile_path, folder_name, notice):
    """Bookmark the welcome page. Returns (result code, error message)."""
    path = os.path.join(profile_path, "Default", "Bookmarks")

    if not os.path.exists(path):
        logger.debug("Creating new app bookmarks.")
        url = f"{notice.url}&b={BOOKMARK_NEW_FILE}"
        try:
            fileops.write_json(path, new_bookmarks(folder_name, notice.title, url),
                               "bookmarks file")
        except FileOpError as exc:
            logger.error("%s", exc.message)
            return BOOKMARK_ERROR, ""
        return BOOKMARK_NEW_FILE, ""

    logger.debug("Checking app bookmarks...")
    try:
        with open(path, encoding="utf-8") as fh:
            doc = json.load(fh)
    except (OSError, ValueError) as exc:
        logger.error("Unable to read in app bookmarks: %s", exc)
        return BOOKMARK_ERROR, ""

    folder = _find_folder(doc, WELCOME_BOOKMARK_FOLDER_GUID)
    if folder is None:
        logger.debug("Welcome page folder not found in app bookmarks.")
        return BOOKMARK_FOLDER_GONE, ""

    logger.debug("Adding welcome page bookmark to existing folder.")
    folder.setdefault("children", []).append(
        _bookmark(notice.title, f"{notice.url}&b={BOOKMARK_ADDED}")
    )
    # the engine recomputes a missing checksum but rejects a stale one
    doc.pop("checksum", None)
    try:
        fileops.write_json(path, doc, "bookmarks file")
    except FileOpError as exc:
        logger.error("%s", exc.message)
        return BOOKMARK_WRITE_ERROR, "Error writing out app bookmarks file."
    return BOOKMARK_ADDED, ""


# ── Whole preparation ────────────────────────────────────────────────────────

def prepare_profile(app, status, notice=None, harvester=None, home=None):
    """Get the profile directory ready for this launch.

    Raises SafetyError (before touching anything) if an engine change is
    pending and the profile path is outside the data root or home, and
    FileOpError if the profile directory can't be created. Everything else
    is collected into the returned message, which is "" when all went well.
    """
    profile = app.profile_path
    if status.old_engine:
        check_profile_path(profile, app.data_root, home)

    if not os.path.isdir(profile):
        logger.debug("Creating profile directory '%s'.", profile)
        try:
            os.makedirs(profile)
        except OSError as exc:
            raise FileOpError("Unable to create app engine profile folder.") from exc

    runtime_arg = "0" if runtime_extension_installed(profile) else None
    delete_errors = []
    scan = None

    if status.old_engine:
        logger.debug(
            "Switching engines from %s to %s. Cleaning up profile directory.",
            status.old_engine.bundle_id, app.engine_type.bundle_id,
        )
        delete_errors, scan = migrate_profile(
            profile, status.old_engine, app.engine_type, harvester
        )
        if engine_family_switch(status.old_engine, app.engine_type):
            if notice is not None:
                if scan and scan.url_args:
                    notice.extend(scan.url_args)
                notice.add("r")
            if runtime_arg is None:
                runtime_arg = "2"

    if status.reset:
        delete_errors += reset_profile(profile)

    bookmark_error = ""
    if notice is not None:
        if runtime_arg is not None:
            notice.add("rt", runtime_arg)
        code, bookmark_error = add_welcome_bookmark(
            profile, f"{app.name} App Info", notice
        )
        notice.add("b", str(code))
        if status.new_app:
            notice.add("m")
        notice.add("fa")

    parts = []
    if delete_errors:
        parts.append(
            f"Unable to remove old profile files. ({' '.join(delete_errors)})"
            " The app's settings may be corrupted and might need to be deleted."
        )
    extra = []
    if bookmark_error:
        extra.append("to write to the bookmarks file. The app's bookmarks may be lost.")
    if scan is not None and scan.code == 1:
        extra.append(
            "to save extensions that will be uninstalled in the engine change."
            " You will have to reinstall the app's extensions manually."
        )
    elif scan is not None and scan.code == 2:
        extra.append(
            "to save some of the extensions that will be uninstalled in the engine"
            " change. You will have to reinstall the following extensions"
            f" manually: {scan.failed_message}"
        )
    if extra:
        parts.append(combine_errors(extra, first="Unable" if not parts else "Also unable"))
    return " ".join(parts)


# ── Master preferences ───────────────────────────────────────────────────────

class MasterPrefs:
    """Temporarily install the app's master preferences for the engine.

    The engine reads its master preferences file only when it creates a
    new profile, so they're installed on a reset and put back once the
    engine has written its own Preferences.
    """

    def __init__(self, app, source):
        self.app = app
        self.source = source
        self.installed = None    # (engine prefs file, our backup of it)

    def install(self):
        prefs_dir = os.path.join(USER_SUPPORT_PATH, self.source.library)
        engine_file = os.path.join(prefs_dir, self.source.master_prefs)
        saved_file = os.path.join(self.app.data_path, self.source.master_prefs)
        logger.debug("Setting master prefs for new profile.")

        try:
            if os.path.exists(engine_file):
                logger.debug("Backing up browser master prefs.")
                shutil.move(engine_file, saved_file)
            else:
                os.makedirs(prefs_dir, exist_ok=True)
            shutil.copyfile(
                os.path.join(self.app.contents_path, MASTER_PREFS_SOURCE_PATH),
                engine_file,
            )
        except OSError as exc:
            if os.path.exists(saved_file) and not os.path.exists(engine_file):
                try:
                    shutil.move(saved_file, engine_file)
                except OSError:
                    logger.error("Unable to restore browser master prefs.")
            raise FileOpError("Unable to install app master prefs.") from exc
        self.installed = (engine_file, saved_file)

    def clear(self, sleep=None):
        """Wait for the profile's Preferences, then put the engine's prefs back.

        Returns an error message, or "".
        """
        if not self.installed:
            return ""
        engine_file, saved_file = self.installed
        self.installed = None
        messages = []

        prefs = os.path.join(self.app.profile_path, "Default", "Preferences")
        wait = {"sleep": sleep} if sleep else {}
        if not fileops.wait_for(lambda: os.path.exists(prefs), "app prefs to appear",
                                PREFS_APPEAR_TIMEOUT, POLL_INTERVAL, **wait):
            messages.append("Timed out waiting for app prefs to appear.")

        try:
            if os.path.exists(saved_file):
                logger.debug("Restoring browser master prefs.")
                shutil.move(saved_file, engine_file)
            else:
                logger.debug("Removing app master prefs.")
                if os.path.exists(engine_file):
                    os.unlink(engine_file)
        except OSError as exc:
            logger.error("Unable to restore browser master prefs: %s", exc)
            messages.append("Unable to restore browser master prefs.")
            if os.path.exists(saved_file):
                try:
                    os.unlink(saved_file)
                except OSError:
                    messages.append("Unable to remove backup browser master prefs.")
        return " Also: ".join(messages)
