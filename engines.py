"""Webwrap – engine sources.

An engine payload is built either from the engine bundled inside the
runtime or from a Chromium-based browser installed on the system. Both are
described by an EngineSource captured from the bundle's Info.plist.
"""

import logging
import os
import plistlib

from config import BROWSERS, INTERNAL_ENGINE_PATH
from errors import PayloadError
from models import EngineSource
from runtimes import spotlight_search

logger = logging.getLogger(__name__)


def browser_info(bundle_id):
    """Known details of a supported browser, or an empty dict."""
    return dict(BROWSERS.get(bundle_id, {}))


def read_info_plist(contents_path):
    """Load ``Info.plist`` from a bundle's Contents directory, or None."""
    path = os.path.join(contents_path, "Info.plist")
    try:
        with open(path, "rb") as fh:
            return plistlib.load(fh)
    except (OSError, plistlib.InvalidFileException, ValueError) as exc:
        logger.debug("Unable to parse Info.plist at '%s': %s", path, exc)
        return None


def source_from_plist(info, path=""):
    doc_types = info.get("CFBundleDocumentTypes") or [{}]
    source = EngineSource(
        bundle_id=info.get("CFBundleIdentifier", ""),
        executable=info.get("CFBundleExecutable", ""),
        name=info.get("CFBundleName", ""),
        display_name=info.get("CFBundleDisplayName", "") or info.get("CFBundleName", ""),
        version=info.get("CFBundleShortVersionString", ""),
        app_icon=info.get("CFBundleIconFile", ""),
        doc_icon=doc_types[0].get("CFBundleTypeIconFile", ""),
        path=path,
    )
    known = browser_info(source.bundle_id)
    source.library = known.get("library", "")
    source.master_prefs = known.get("master_prefs", "")
    return source


def _has_executable(contents_path, executable):
    exec_path = os.path.join(contents_path, "MacOS", executable)
    return bool(executable) and os.path.isfile(exec_path) and os.access(exec_path, os.X_OK)


def validate_browser(app_path, bundle_id):
    """Return an EngineSource if *app_path* is a complete copy of *bundle_id*."""
    contents = os.path.join(app_path, "Contents")
    info = read_info_plist(contents)
    if info is None:
        logger.debug("No app found at '%s'", app_path)
        return None
    if info.get("CFBundleIdentifier") != bundle_id:
        logger.debug(
            "Found ID %s instead of %s at '%s'",
            info.get("CFBundleIdentifier"), bundle_id, app_path,
        )
        return None
    if not _has_executable(contents, info.get("CFBundleExecutable", "")):
        logger.debug("No valid executable at '%s'", app_path)
        return None
    return source_from_plist(info, app_path)


def find_external_engine(engine_type, explicit_path=None, search=spotlight_search):
    """Locate the installed browser an external-engine app runs on.

    With *explicit_path* only that path is tried. Otherwise the usual
    Applications folders are tried, then Spotlight. Returns an EngineSource
    or None.
    """
    bundle_id = engine_type.bundle_id
    display_name = browser_info(bundle_id).get("name") or bundle_id

    if explicit_path:
        candidates = [explicit_path]
        use_spotlight = False
    else:
        candidates = []
        if bundle_id in BROWSERS:
            candidates = [
                os.path.expanduser(f"~/Applications/{display_name}.app"),
                f"/Applications/{display_name}.app",
            ]
        use_spotlight = True

    for path in candidates:
        logger.debug("Trying path '%s'...", path)
        if os.path.isdir(path):
            source = validate_browser(path, bundle_id)
            if source:
                break
    else:
        source = None
        if use_spotlight:
            logger.debug("Searching Spotlight for instances of %s...", display_name)
            found = search(bundle_id)
            if found:
                source = validate_browser(found[0], bundle_id)
            else:
                logger.debug("Spotlight found no instances of %s.", display_name)

    if source:
        logger.debug(
            "External engine %s %s found at '%s'.",
            source.display_name, source.version, source.path,
        )
    else:
        logger.debug("External engine %s not found.", display_name)
    return source


def internal_engine_contents(runtime_path):
    return os.path.join(runtime_path, INTERNAL_ENGINE_PATH)


def internal_engine_source(runtime_path):
    """EngineSource for the engine bundled inside a runtime."""
    contents = internal_engine_contents(runtime_path)
    info = read_info_plist(contents)
    if info is None or not _has_executable(contents, info.get("CFBundleExecutable", "")):
        raise PayloadError(f"No valid engine found in runtime at '{runtime_path}'.")
    return source_from_plist(info, contents)
