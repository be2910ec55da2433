"""Webwrap – per-app configuration file.

The file is flat key=value text, one variable per line, with shell quoting:

    # config.sh -- autogenerated Sat Oct 17 09:12:44 2026

    AppPath='/Applications/My App.app'
    UpdateIgnoreVersions=( 2.4.1 '2.5.0b2' )

ConfigStore keeps a snapshot of what was last read or written, so save()
only touches the disk when some value actually changed.
"""

import copy
import logging
import os
import shlex
from dataclasses import dataclass, field
from datetime import datetime

import fileops
from errors import ConfigError

logger = logging.getLogger(__name__)


# ── File format ──────────────────────────────────────────────────────────────

def format_value(value):
    if isinstance(value, (list, tuple)):
        items = " ".join(shlex.quote(str(v)) for v in value)
        return f"( {items} )" if items else "( )"
    return shlex.quote(str(value))


def parse_value(text):
    text = text.strip()
    if text.startswith("(") and text.endswith(")"):
        return shlex.split(text[1:-1])
    return "".join(shlex.split(text))


def dumps(values, name="config.sh"):
    """Render an ordered mapping of name -> str or list."""
    stamp = datetime.now().strftime("%a %b %d %H:%M:%S %Y")
    lines = [f"# {name} -- autogenerated {stamp}", ""]
    for key, value in values.items():
        lines.append(f"{key}={format_value(value)}")
    return "\n".join(lines) + "\n"


def loads(text):
    values = {}
    for lineno, line in enumerate(text.splitlines(), 1):
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        key, sep, rest = line.partition("=")
        if not sep or not key.isidentifier():
            raise ConfigError(f"Malformed line {lineno}: {line!r}")
        try:
            values[key] = parse_value(rest)
        except ValueError as exc:
            raise ConfigError(f"Malformed value on line {lineno}: {exc}") from exc
    return values


def read_vars(path, what="configuration file"):
    try:
        with open(path, encoding="utf-8") as fh:
            return loads(fh.read())
    except FileNotFoundError as exc:
        raise ConfigError(f"Error loading {what}: Nothing found at '{path}'.") from exc
    except OSError as exc:
        raise ConfigError(f"Error loading {what}: '{path}' is not readable.") from exc


def write_vars(path, values):
    fileops.write_text(path, dumps(values, os.path.basename(path)), os.path.basename(path))


# ── Field table ──────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ConfigField:
    key: str          # name in the file
    attr: str         # attribute on AppConfig
    external_only: bool = False


CONFIG_FIELDS = (
    ConfigField("AppPath", "app_path"),
    ConfigField("LastRunVersion", "last_run_version"),
    ConfigField("LastRunEngineType", "last_run_engine_type"),
    ConfigField("EngineSourceInfo", "engine_source"),
    ConfigField("PayloadPath", "payload_path"),
    ConfigField("BuildStamp", "build_stamp"),
    ConfigField("UpdateAction", "update_action"),
    ConfigField("UpdateIgnoreVersions", "update_ignore_versions"),
    ConfigField("UpdateCheckSkip", "update_check_skip"),
    ConfigField("LastErrorGithubFatal", "last_error_github_fatal"),
    ConfigField("ExtensionInstallError", "extension_install_error"),
    ConfigField("ExternalEnginePath", "external_engine_path", external_only=True),
    ConfigField("ExternalEngineVersion", "external_engine_version", external_only=True),
)


@dataclass
class AppConfig:
    app_path: str = ""
    last_run_version: str = ""
    last_run_engine_type: str = ""
    engine_source: list = field(default_factory=list)
    payload_path: str = ""
    build_stamp: str = ""
    update_action: str = "Ask"
    update_ignore_versions: list = field(default_factory=list)
    update_check_skip: str = ""
    last_error_github_fatal: str = ""
    extension_install_error: str = ""
    external_engine_path: str = ""
    external_engine_version: str = ""


def active_fields(external):
    return [f for f in CONFIG_FIELDS if external or not f.external_only]


# ── Store ────────────────────────────────────────────────────────────────────

class ConfigStore:
    def __init__(self, path, external=False):
        self.path = path
        self.external = external
        self.config = AppConfig()
        self._saved = {}

    @property
    def exists(self):
        return os.path.isfile(self.path)

    def _values(self):
        return {
            f.key: copy.deepcopy(getattr(self.config, f.attr))
            for f in active_fields(self.external)
        }

    def load(self):
        """Read the file into self.config and snapshot it."""
        values = read_vars(self.path)
        for f in CONFIG_FIELDS:
            if f.key in values:
                setattr(self.config, f.attr, values[f.key])
        self._saved = {k: copy.deepcopy(v) for k, v in values.items()}
        logger.debug("Read configuration from '%s'.", self.path)
        for f in active_fields(self.external):
            logger.debug("  %s=%r", f.key, getattr(self.config, f.attr))
        return self.config

    def changed(self):
        """True if any active value differs from the last read or write."""
        for key, value in self._values().items():
            if key not in self._saved:
                return True
            saved = self._saved[key]
            if isinstance(value, list) != isinstance(saved, list):
                return True
            if isinstance(value, list):
                if len(value) != len(saved):
                    return True
                if any(str(a) != str(b) for a, b in zip(value, saved)):
                    return True
            elif str(value) != str(saved):
                return True
        return False

    def save(self, force=False):
        """Write the file if forced or changed. Returns True if written."""
        if force:
            logger.debug("Forced configuration write.")
        elif not self.changed():
            logger.debug("Configuration has not changed. No need to update.")
            return False
        else:
            logger.debug("Configuration has changed. Updating '%s'.", self.path)
        values = self._values()
        write_vars(self.path, values)
        self._saved = copy.deepcopy(values)
        return True
