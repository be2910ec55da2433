"""Webwrap – engine payload manager.

The payload is a copy of a browser engine's Contents directory kept at
``<data root>/Engines.noindex/<user>/<app id>``. It lives in one of two
places:

    Engine/    the packed engine; the app bundle's Contents is the launcher
    Launcher/  the launcher, moved aside while the engine sits in Contents

Activating swaps the engine into the app bundle and deactivating swaps it
back. At most one of Engine/ and Launcher/ may exist at a time.
"""

import logging
import os
import shutil
from enum import Enum

import fileops
import filters
from config import APP_ID_BASE, PAYLOAD_DELETE_TIMEOUT, POLL_INTERVAL
from errors import FileOpError, PayloadError, SafetyError
from models import EngineSource

logger = logging.getLogger(__name__)

ENGINE_DIR = "Engine"
LAUNCHER_DIR = "Launcher"


class PayloadState(Enum):
    NO_PAYLOAD = "none"
    INACTIVE = "inactive"
    ACTIVE = "active"
    CORRUPT = "corrupt"


class EnginePayload:
    def __init__(self, app, path, source=None):
        self.app = app
        self.path = path
        self.source = source or EngineSource()

    @property
    def engine_path(self):
        return os.path.join(self.path, ENGINE_DIR)

    @property
    def launcher_path(self):
        return os.path.join(self.path, LAUNCHER_DIR)

    # ── State ────────────────────────────────────────────────────────────

    def validate(self):
        """True if the packed engine is complete and alone in the payload."""
        if not os.path.isdir(self.engine_path):
            logger.error("Engine payload not found.")
            return False
        if os.listdir(self.path) != [ENGINE_DIR]:
            logger.error("Extra items found in engine payload directory.")
            return False
        executable = os.path.join(self.engine_path, "MacOS", self.source.executable)
        if not (self.source.executable and os.access(executable, os.X_OK)
                and os.path.isfile(executable)
                and os.path.isfile(os.path.join(self.engine_path, "Info.plist"))):
            logger.error("Engine payload appears corrupt.")
            return False
        logger.debug("Engine payload appears valid.")
        return True

    def state(self):
        if not os.path.isdir(self.path):
            return PayloadState.NO_PAYLOAD
        has_engine = os.path.lexists(self.engine_path)
        has_launcher = os.path.lexists(self.launcher_path)
        if has_launcher and not has_engine:
            return PayloadState.ACTIVE
        if has_engine and not has_launcher and self.validate():
            return PayloadState.INACTIVE
        return PayloadState.CORRUPT

    @property
    def is_active(self):
        return os.path.lexists(self.launcher_path) and not os.path.lexists(self.engine_path)

    # ── Activation ───────────────────────────────────────────────────────

    def activate(self):
        self._set_state(True)

    def deactivate(self):
        self._set_state(False)

    def _set_state(self, on):
        if on:
            old_inactive, new_inactive, name = self.engine_path, self.launcher_path, "activate"
        else:
            old_inactive, new_inactive, name = self.launcher_path, self.engine_path, "deactivate"
        contents = self.app.contents_path

        if os.path.lexists(new_inactive):
            raise PayloadError(f"Engine already {name}d.")
        if not os.path.isdir(old_inactive):
            raise PayloadError(f"Unable to {name} engine: nothing at '{old_inactive}'.")

        try:
            os.rename(contents, new_inactive)
        except OSError as exc:
            raise PayloadError(f"Unable to {name} engine.") from exc
        if os.path.lexists(contents):
            raise PayloadError("Unknown error moving old payload out of app.")

        try:
            os.rename(old_inactive, contents)
        except OSError as exc:
            message = f"Unable to {name} engine."
            try:
                os.rename(new_inactive, contents)
            except OSError:
                message += (" Also: Unable to restore old app state."
                            " This app may be damaged and unable to run.")
            raise PayloadError(message) from exc

        logger.debug("Engine %sd.", name)

    # ── Delete ───────────────────────────────────────────────────────────

    def delete(self, must_succeed=True, sleep=None):
        """Remove the payload and the links that point at it.

        A non-mandatory delete logs failures as warnings and returns False
        instead of raising.
        """
        try:
            self._delete(sleep)
        except (PayloadError, FileOpError, SafetyError) as exc:
            if must_succeed:
                raise
            logger.warning("Warning -- %s", exc.message)
            return False
        finally:
            if not os.path.isdir(self.path):
                self._clean_up_links()
        return True

    def _delete(self, sleep):
        if not os.path.isdir(self.path):
            return
        if self.is_active:
            raise PayloadError("Cannot delete payload while engine is active.")

        logger.debug("Deleting payload at '%s'", self.path)
        fileops.safe_rmtree(self.path, [self.app.data_root], "payload")

        wait = {"sleep": sleep} if sleep else {}
        if not fileops.wait_for(
            lambda: not os.path.isdir(self.path), "payload to delete",
            PAYLOAD_DELETE_TIMEOUT, POLL_INTERVAL, **wait,
        ):
            raise PayloadError("Removal of payload failed.")

    def _clean_up_links(self):
        parent = os.path.dirname(self.path)
        if os.path.basename(parent) == self.app.user:
            try:
                os.rmdir(parent)
            except OSError:
                pass  # not empty
        for name in ("Engine", "Payload"):
            link = os.path.join(self.app.data_path, name)
            if os.path.islink(link):
                try:
                    os.unlink(link)
                except OSError as exc:
                    logger.warning(
                        "Unable to remove link to old engine payload in data directory: %s",
                        exc,
                    )

    # ── Create ───────────────────────────────────────────────────────────

    def create(self, source, icon_path=None):
        """Build a packed engine from *source*, leaving the payload INACTIVE.

        *source* is an EngineSource whose path is a browser app bundle or,
        for the internal engine, a Contents directory. *icon_path* is the
        app's icon file, used in place of the browser's.
        """
        if os.path.lexists(self.engine_path) or os.path.lexists(self.launcher_path):
            raise PayloadError(f"A payload already exists at '{self.path}'.")
        src_contents = source.path.rstrip("/")
        if src_contents.endswith(".app"):
            src_contents = os.path.join(src_contents, "Contents")

        logger.info("Creating engine payload from '%s'.", src_contents)
        temp = fileops.stage(self.engine_path)
        try:
            fileops.link_tree(src_contents, temp, "engine files")
            self._customize(temp, source, icon_path)
        except (FileOpError, OSError) as exc:
            logger.error("Engine payload build failed: %s", exc)
            fileops.discard(temp, "engine")
            raise PayloadError("Unable to create engine payload.") from exc
        fileops.commit(temp, self.engine_path, "engine")

        self.source = source
        self._link_from_data_dir()
        return source

    def _customize(self, contents, source, icon_path):
        app = self.app
        filters.filter_plist(
            os.path.join(contents, "Info.plist"),
            os.path.join(contents, "Info.plist"),
            {
                "CFBundleIdentifier": f"{APP_ID_BASE}.{app.app_id}",
                "CFBundleName": app.name,
                "CFBundleDisplayName": app.name,
                "CFBundleDocumentTypes": filters.DELETE,
                "CFBundleURLTypes": filters.DELETE,
            },
            "engine Info.plist",
        )
        resources = os.path.join(contents, "Resources")
        filters.filter_lproj(resources, app.name, app.name)
        if icon_path and source.app_icon and os.path.isfile(icon_path):
            dst = os.path.join(resources, source.app_icon)
            if not dst.endswith(".icns"):
                dst += ".icns"
            # the existing icon may be a hard link to the browser's
            temp = fileops.stage(dst)
            shutil.copy2(icon_path, temp)
            fileops.commit(temp, dst, "engine icon")

    def _link_from_data_dir(self):
        link = os.path.join(self.app.data_path, "Engine")
        try:
            os.makedirs(self.app.data_path, exist_ok=True)
            if os.path.islink(link):
                os.unlink(link)
            os.symlink(self.path, link)
        except OSError as exc:
            logger.warning("Unable to link to engine payload from data directory: %s", exc)
