"""Webwrap – browser extension harvesting.

Collects the extensions installed in a profile (or in every known browser)
so the welcome page can offer to reinstall them. Each extension contributes
its largest icon, copied into the shared icon directory, and its name,
resolved through the extension's locale messages when needed.

Results are cached per locale in ``ExtensionIcons/extinfo_<locale>.json``:

    {"<id>": {"version": "1.2.0", "name": "Some Extension"},
     "<id>": {"app": true},
     "<id>": {"bad": true, "version": "3.1"}}
"""

import json
import logging
import os
import re
from dataclasses import dataclass, field
from urllib.parse import quote

import fileops
from config import (
    BROWSERS,
    EXT_INFO_FILE_NAME,
    INTERNAL_EXTENSION_IDS,
    RUNTIME_EXTENSION_IDS,
    USER_SUPPORT_PATH,
)
from errors import FileOpError

logger = logging.getLogger(__name__)

_EXT_ID = re.compile(r"^[a-z]{32}$")
_MSG_NAME = re.compile(r"^__MSG_(.+)__$")
SKIP_IDS = frozenset(("Temp",) + RUNTIME_EXTENSION_IDS + INTERNAL_EXTENSION_IDS)


@dataclass
class ExtensionScan:
    args: list = field(default_factory=list)      # "x=<icon,name>" per extension
    succeeded: list = field(default_factory=list)
    failed: list = field(default_factory=list)
    global_error: bool = False

    @property
    def code(self):
        """0 all ok, 1 nothing usable, 2 some extensions failed."""
        if self.global_error or (self.failed and not self.succeeded):
            return 1
        if self.failed:
            return 2
        return 0

    @property
    def url_args(self):
        return "&".join(self.args)

    @property
    def failed_message(self):
        return ", ".join(self.failed)


def current_locale(environ=None):
    environ = os.environ if environ is None else environ
    for key in ("LC_ALL", "LC_MESSAGES", "LANG"):
        if environ.get(key):
            return environ[key].split(".", 1)[0]
    return "en_US"


def browser_data_dirs():
    """Application Support directories of every known browser that exists."""
    dirs = []
    for info in BROWSERS.values():
        path = os.path.join(USER_SUPPORT_PATH, info["library"])
        if os.path.isdir(path):
            dirs.append(path)
    return dirs


def extension_dirs(search_paths):
    """Find the Extensions directories under profiles or browser data dirs."""
    result = []
    for path in search_paths:
        if os.path.isdir(os.path.join(path, "Extensions")):
            result.append(os.path.join(path, "Extensions"))
            continue
        try:
            children = sorted(os.listdir(path))
        except OSError:
            continue
        for name in children:
            sub = os.path.join(path, name, "Extensions")
            if os.path.isdir(sub):
                result.append(sub)
    return result


# ── Manifest reading ─────────────────────────────────────────────────────────

def _load_json(path):
    with open(path, encoding="utf-8-sig") as fh:
        return json.load(fh)


def biggest_icon(icons):
    """Path of the largest icon in a manifest ``icons`` mapping."""
    best_size, best = 0, None
    for size, path in (icons or {}).items():
        try:
            size = int(size)
        except (TypeError, ValueError):
            continue
        if size > best_size:
            best_size, best = size, path
    return best


def _locale_dir(ext_path, locale, default_locale):
    base = os.path.join(ext_path, "_locales")
    candidates = [locale, locale.split("_", 1)[0]]
    if default_locale:
        candidates.append(default_locale)
    for name in candidates:
        if os.path.isdir(os.path.join(base, name)):
            return os.path.join(base, name)
    try:
        for name in sorted(os.listdir(base)):
            if os.path.isdir(os.path.join(base, name)):
                return os.path.join(base, name)
    except OSError:
        pass
    return None


def resolve_name(name, ext_path, locale, default_locale=None):
    """Resolve a ``__MSG_id__`` name through the extension's locales."""
    match = _MSG_NAME.match(name or "")
    if not match:
        return name or ""
    message_id = match.group(1)
    locale_dir = _locale_dir(ext_path, locale, default_locale)
    if not locale_dir:
        logger.error("Unable to find locale messages for '%s'. Using ID as name.", ext_path)
        return ""
    try:
        messages = _load_json(os.path.join(locale_dir, "messages.json"))
    except (OSError, ValueError) as exc:
        logger.error("Unable to read locale messages in '%s': %s", locale_dir, exc)
        return ""
    # message keys are case-insensitive
    for key, value in messages.items():
        if key.lower() == message_id.lower() and isinstance(value, dict):
            return value.get("message", "")
    logger.error("Unable to get locale name from '%s'. Using ID as name.", locale_dir)
    return ""


# ── Scan ─────────────────────────────────────────────────────────────────────

class ExtensionHarvester:
    def __init__(self, icon_dir, locale=None):
        self.icon_dir = icon_dir
        self.locale = locale or current_locale()
        self.cache_path = os.path.join(icon_dir, EXT_INFO_FILE_NAME.format(locale=self.locale))
        self.cache = {}

    def _read_cache(self):
        try:
            self.cache = _load_json(self.cache_path)
        except FileNotFoundError:
            self.cache = {}
        except (OSError, ValueError) as exc:
            logger.warning("Unable to read extension cache: %s", exc)
            self.cache = {}

    def _write_cache(self):
        try:
            if self.cache:
                fileops.write_json(self.cache_path, self.cache, "extension cache")
            elif os.path.exists(self.cache_path):
                os.unlink(self.cache_path)
        except (FileOpError, OSError) as exc:
            logger.warning("Unable to write extension cache: %s", exc)

    def _cached_icon(self, ext_id):
        try:
            for name in sorted(os.listdir(self.icon_dir)):
                if name.startswith(ext_id + "."):
                    return name
        except OSError:
            pass
        return ""

    def scan(self, search_paths=None):
        """Collect extension info from *search_paths* or every known browser."""
        scan = ExtensionScan()
        if not search_paths:
            search_paths = browser_data_dirs()

        found = {}
        for ext_dir in extension_dirs(search_paths):
            try:
                names = os.listdir(ext_dir)
            except OSError as exc:
                logger.error("Unable to read extensions directory '%s': %s", ext_dir, exc)
                scan.global_error = True
                continue
            for ext_id in names:
                if ext_id in SKIP_IDS or not _EXT_ID.match(ext_id):
                    continue
                found.setdefault(ext_id, os.path.join(ext_dir, ext_id))

        if found:
            try:
                os.makedirs(self.icon_dir, exist_ok=True)
            except OSError as exc:
                logger.error("Unable to create extension icon directory: %s", exc)
                scan.global_error = True
                return scan

        self._read_cache()
        dirty = False
        for ext_id in sorted(found):
            logger.debug("Processing extension ID %s for welcome page.", ext_id)
            entry, changed = self._extension_info(ext_id, found[ext_id])
            dirty = dirty or changed
            if entry is None:
                scan.failed.append(ext_id)
                continue
            if entry.get("app") or entry.get("bad"):
                continue
            icon = self._cached_icon(ext_id) or ext_id
            scan.args.append("x=" + quote(f"{icon},{entry.get('name', '')}", safe=""))
            scan.succeeded.append(ext_id)

        if dirty:
            self._write_cache()
        return scan

    def _extension_info(self, ext_id, ext_path):
        """Return (cache entry or None on failure, whether the cache changed)."""
        cached = self.cache.get(ext_id)
        if cached and cached.get("app"):
            logger.debug("  Skipping cached app.")
            return cached, False

        try:
            versions = sorted(os.listdir(ext_path))
        except OSError:
            versions = []
        if not versions:
            logger.error("Unable to get version for extension %s.", ext_id)
            return None, False
        version = versions[-1]
        version_path = os.path.join(ext_path, version)

        if cached and cached.get("version") == version:
            if cached.get("bad"):
                logger.debug("  Skipping cached unreadable extension.")
            return cached, False

        try:
            manifest = _load_json(os.path.join(version_path, "manifest.json"))
        except (OSError, ValueError) as exc:
            logger.debug("  Skipping unreadable extension: %s", exc)
            self.cache[ext_id] = {"bad": True, "version": version}
            return None, True

        if manifest.get("app"):
            logger.debug("  Skipping app.")
            self.cache[ext_id] = {"app": True}
            return self.cache[ext_id], True

        icon_src = biggest_icon(manifest.get("icons"))
        if icon_src:
            self._copy_icon(ext_id, os.path.join(version_path, icon_src.lstrip("/")))
        else:
            logger.debug("  No icon found.")

        name = resolve_name(
            manifest.get("name", ""), version_path, self.locale,
            manifest.get("default_locale"),
        )
        self.cache[ext_id] = {"version": version, "name": name}
        return self.cache[ext_id], True

    def _copy_icon(self, ext_id, icon_src):
        ext = os.path.splitext(icon_src)[1].lstrip(".") or "png"
        dst = os.path.join(self.icon_dir, f"{ext_id}.{ext}")
        try:
            fileops.safe_copy(icon_src, dst, f"icon for extension {ext_id}")
        except FileOpError as exc:
            logger.error("%s", exc.message)
            return
        # drop an older icon of another file type
        for name in os.listdir(self.icon_dir):
            if name.startswith(ext_id + ".") and name != os.path.basename(dst):
                fileops.discard(os.path.join(self.icon_dir, name), "icon")


