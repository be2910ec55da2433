"""Webwrap – data model.

AppInstance is one user-built wrapper app, as described by the environment
its launcher script runs in. RuntimeInstance is one copy of the Webwrap
runtime found on disk.
"""

import getpass
import os
from dataclasses import dataclass, field

from config import (
    APPS_DIR_NAME,
    DATA_ROOT,
    EXT_ICON_DIR_NAME,
    INCOMPATIBLE_ENGINE_IDS,
    PAYLOAD_DIR_NAME,
    UPDATE_CHECK_FILE_NAME,
    WELCOME_DIR_NAME,
)
import versions
from errors import ConfigError

INTERNAL = "internal"
EXTERNAL = "external"


# ── Engine type ──────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class EngineType:
    """Engine type string of the form ``internal|<bundleid>``."""

    kind: str
    bundle_id: str

    @classmethod
    def parse(cls, text):
        kind, sep, bundle_id = (text or "").partition("|")
        if not sep or kind not in (INTERNAL, EXTERNAL) or not bundle_id:
            raise ConfigError(f"Unknown engine type '{text}'.")
        return cls(kind, bundle_id)

    def __str__(self):
        return f"{self.kind}|{self.bundle_id}"

    @property
    def is_internal(self):
        return self.kind == INTERNAL


def engine_family_switch(old, new):
    """True if a profile can't be carried from *old* to *new* as is.

    Google Chrome profiles aren't compatible with any other engine's, so a
    change with Chrome on either side counts.
    """
    if not old or not new:
        return False
    return any(e.bundle_id in INCOMPATIBLE_ENGINE_IDS for e in (old, new))


# ── Engine source ────────────────────────────────────────────────────────────

@dataclass
class EngineSource:
    """Identity of the browser an engine payload was built from."""

    bundle_id: str = ""
    executable: str = ""
    name: str = ""
    display_name: str = ""
    version: str = ""
    app_icon: str = ""
    doc_icon: str = ""
    path: str = ""
    library: str = ""
    master_prefs: str = ""

    _ORDER = (
        "bundle_id", "executable", "name", "display_name", "version",
        "app_icon", "doc_icon", "path", "library", "master_prefs",
    )

    def to_list(self):
        return [getattr(self, name) for name in self._ORDER]

    @classmethod
    def from_list(cls, values):
        values = list(values or [])
        values += [""] * (len(cls._ORDER) - len(values))
        return cls(**dict(zip(cls._ORDER, values)))

    def __bool__(self):
        return bool(self.bundle_id and self.executable)


# ── Launch status ────────────────────────────────────────────────────────────

@dataclass
class LaunchStatus:
    """What changed since the app's last run. Derived, never stored."""

    new_app: bool = False
    old_version: str = ""          # set when the app was updated
    edited: bool = False
    reset: bool = False
    old_engine: EngineType = None  # set when the engine type changed
    old_engine_name: str = ""
    cannot_create_payload: bool = False

    @property
    def any_change(self):
        return bool(self.new_app or self.old_version or self.edited
                    or self.reset or self.old_engine)


# ── Instances ────────────────────────────────────────────────────────────────

@dataclass
class RuntimeInstance:
    path: str
    version: str = "0.0.0"
    change_list: list = field(default_factory=list)
    fix_list: list = field(default_factory=list)
    desc_major: list = field(default_factory=list)

    @property
    def is_release(self):
        return versions.is_release(self.version)


@dataclass
class AppInstance:
    app_id: str
    app_path: str
    version: str
    engine_type: EngineType
    name: str = ""
    build_stamp: str = ""
    data_root: str = DATA_ROOT
    user: str = ""

    def __post_init__(self):
        if not self.name:
            self.name = os.path.splitext(os.path.basename(self.app_path))[0]
        if not self.user:
            self.user = getpass.getuser()

    @classmethod
    def from_environment(cls, environ=None, data_root=None):
        """Build the instance from the launcher's WEBWRAP_* variables."""
        environ = os.environ if environ is None else environ
        missing = [
            key for key in ("WEBWRAP_APP_ID", "WEBWRAP_APP_VERSION",
                            "WEBWRAP_ENGINE_TYPE", "WEBWRAP_APP_PATH")
            if not environ.get(key)
        ]
        if missing:
            raise ConfigError(f"Missing app identity: {', '.join(missing)}.")
        return cls(
            app_id=environ["WEBWRAP_APP_ID"],
            app_path=environ["WEBWRAP_APP_PATH"].rstrip("/"),
            version=environ["WEBWRAP_APP_VERSION"],
            engine_type=EngineType.parse(environ["WEBWRAP_ENGINE_TYPE"]),
            name=environ.get("WEBWRAP_APP_NAME", ""),
            build_stamp=environ.get("WEBWRAP_BUILD_STAMP", ""),
            data_root=data_root or environ.get("WEBWRAP_DATA_ROOT") or DATA_ROOT,
        )

    # ── Paths ────────────────────────────────────────────────────────────

    @property
    def contents_path(self):
        return os.path.join(self.app_path, "Contents")

    @property
    def data_path(self):
        return os.path.join(self.data_root, APPS_DIR_NAME, self.app_id)

    @property
    def profile_path(self):
        return os.path.join(self.data_path, "UserData")

    @property
    def config_path(self):
        return os.path.join(self.data_path, "config.sh")

    @property
    def welcome_path(self):
        return os.path.join(self.data_path, WELCOME_DIR_NAME)

    @property
    def backup_path(self):
        return os.path.join(self.data_path, "Backups")

    @property
    def lock_path(self):
        return os.path.join(self.data_path, "lock")

    @property
    def default_payload_path(self):
        return os.path.join(self.data_root, PAYLOAD_DIR_NAME, self.user, self.app_id)

    @property
    def ext_icon_path(self):
        return os.path.join(self.data_root, EXT_ICON_DIR_NAME)

    @property
    def update_check_path(self):
        return os.path.join(self.data_root, UPDATE_CHECK_FILE_NAME)
