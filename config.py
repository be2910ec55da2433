"""Webwrap – configuration."""

import os

# ── Runtime identity ─────────────────────────────────────────────────────────
APP_VERSION = "2.4.3"
GITHUB_REPO = "webwrap/webwrap"  # owner/repo for update checks
GITHUB_RELEASES_URL = f"https://github.com/{GITHUB_REPO}/releases/latest"

RUNTIME_NAME = "Webwrap"
RUNTIME_BUNDLE_ID = "org.webwrap.Webwrap"
APP_ID_BASE = "org.webwrap.app"

# ── Engines ──────────────────────────────────────────────────────────────────
GOOGLE_CHROME_ID = "com.google.Chrome"
INTERNAL_ENGINE_ID = "com.brave.Browser"

# Each entry: bundle id -> display name, Application Support subdirectory,
# master preferences filename.
BROWSERS = {
    "com.microsoft.edgemac": {
        "name": "Microsoft Edge",
        "library": "Microsoft Edge",
        "master_prefs": "Microsoft Edge Master Preferences",
    },
    "com.vivaldi.Vivaldi": {
        "name": "Vivaldi",
        "library": "Vivaldi",
        "master_prefs": "Vivaldi Master Preferences",
    },
    "com.operasoftware.Opera": {
        "name": "Opera",
        "library": "com.operasoftware.Opera",
        "master_prefs": "Opera Master Preferences",
    },
    "com.brave.Browser": {
        "name": "Brave Browser",
        "library": "BraveSoftware/Brave-Browser",
        "master_prefs": "Brave Browser Master Preferences",
    },
    "org.chromium.Chromium": {
        "name": "Chromium",
        "library": "Chromium",
        "master_prefs": "Chromium Master Preferences",
    },
    "com.google.Chrome": {
        "name": "Google Chrome",
        "library": "Google/Chrome",
        "master_prefs": "Google Chrome Master Preferences",
    },
}

# Engines whose profiles can't be shared with any other engine.
INCOMPATIBLE_ENGINE_IDS = (GOOGLE_CHROME_ID,)

# ── Paths ────────────────────────────────────────────────────────────────────
USER_SUPPORT_PATH = os.path.expanduser("~/Library/Application Support")
DATA_ROOT = os.environ.get(
    "WEBWRAP_DATA_ROOT",
    os.path.join(USER_SUPPORT_PATH, "Webwrap"),
)
APPS_DIR_NAME = "Apps"
PAYLOAD_DIR_NAME = "Engines.noindex"
EXT_ICON_DIR_NAME = "ExtensionIcons"
UPDATE_CHECK_FILE_NAME = "update_check.txt"
EXT_INFO_FILE_NAME = "extinfo_{locale}.json"

GLOBAL_RUNTIME_PATH = f"/Applications/{RUNTIME_NAME}/{RUNTIME_NAME}.app"
USER_RUNTIME_PATH = os.path.expanduser("~") + GLOBAL_RUNTIME_PATH

# relative to a runtime or app bundle
VERSION_DESCRIPTOR_PATH = "Contents/Resources/Scripts/version.sh"
INTERNAL_ENGINE_PATH = "Contents/Resources/Engine/Payload"
WELCOME_SOURCE_PATH = "Resources/Welcome"
MASTER_PREFS_SOURCE_PATH = "Resources/Profile/Prefs/prefs_nocreds.json"
APP_ICON_PATH = "Resources/app.icns"

WELCOME_DIR_NAME = "Welcome"
WELCOME_PAGE = "welcome.html"
WELCOME_BOOKMARK_FOLDER_GUID = "e91c4703-ee91-c470-3ee9-1c4703ee91c4"

# ── Runtime extension ────────────────────────────────────────────────────────
RUNTIME_EXTENSION_IDS = (
    "ngbkcglbmlglgldjfcnhaijeecaccgfi",  # release
    "oemcbmnkkdpnhpmfehlpiakkhhgfhjdn",  # beta
)
# built-in Chrome extensions that never show up as user extensions
INTERNAL_EXTENSION_IDS = (
    "coobgpohoikkiipiblmjeljniedjpjpf",
    "nmmhkkegccagdldgiimedpiccmgmieda",
    "pkedcjkdefgpdelpbcmbmeomcjbeemfm",
)

# ── Scheduling ───────────────────────────────────────────────────────────────
UPDATE_CHECK_INTERVAL_DAYS = 2
UPDATE_CHECK_RETRY_DAYS = 1          # after a failed check
GITHUB_TIMEOUT_SECONDS = 10
PAYLOAD_DELETE_TIMEOUT = 5.0
PREFS_APPEAR_TIMEOUT = 15.0
ENGINE_OPEN_TIMEOUT = 10.0
POLL_INTERVAL = 0.5

# ── Logging ──────────────────────────────────────────────────────────────────
DEBUG = bool(os.environ.get("WEBWRAP_DEBUG", ""))
LOG_PRESERVE = bool(os.environ.get("WEBWRAP_LOG_PRESERVE", ""))
APP_LOG_NAME = "webwrap_app_log.txt"
