"""Webwrap – runtime instance locator.

Finds every copy of the Webwrap runtime on disk and picks out the one that
matches the app's version ("current"), the newest one ("latest") and the
newest one the app may update to ("update").
"""

import logging
import os
import subprocess
from dataclasses import dataclass, field
from enum import IntEnum

import appconfig
import versions
from config import (
    GLOBAL_RUNTIME_PATH,
    PAYLOAD_DIR_NAME,
    RUNTIME_BUNDLE_ID,
    RUNTIME_NAME,
    USER_RUNTIME_PATH,
    VERSION_DESCRIPTOR_PATH,
)
from errors import ConfigError
from models import RuntimeInstance

logger = logging.getLogger(__name__)

NO_VERSION = "0.0.0"


class LocateOutcome(IntEnum):
    RESOLVED = 0          # current, latest and update all found
    NOTHING = 1
    LATEST_UPDATE = 2
    CURRENT_LATEST = 3
    LATEST_ONLY = 4


@dataclass
class LocateResult:
    outcome: LocateOutcome
    current: RuntimeInstance = None
    latest: RuntimeInstance = None
    update: RuntimeInstance = None
    cannot_create: bool = False
    ignore_versions: list = field(default_factory=list)


# ── Discovery ────────────────────────────────────────────────────────────────

def spotlight_search(bundle_id=RUNTIME_BUNDLE_ID):
    """Ask Spotlight for every bundle with *bundle_id*. Errors mean no results."""
    try:
        result = subprocess.run(
            ["/usr/bin/mdfind", f"kMDItemCFBundleIdentifier == '{bundle_id}'"],
            capture_output=True, text=True, timeout=30, check=True,
        )
    except (OSError, subprocess.SubprocessError) as exc:
        logger.debug("Spotlight search failed: %s", exc)
        return []
    return [line for line in result.stdout.splitlines() if line]


def payload_adjacent_path(payload_path):
    """Runtime path that sits beside the Engines.noindex directory."""
    marker = os.sep + PAYLOAD_DIR_NAME + os.sep
    if marker not in payload_path:
        return None
    return os.path.join(payload_path.split(marker, 1)[0], f"{RUNTIME_NAME}.app")


def candidate_paths(preferred, found):
    """Merge *preferred* paths with search results.

    A preferred path comes first if the search found it or it exists on
    disk. Search results not already used follow, in search order.
    """
    remaining = list(found)
    result = []
    for pref in preferred:
        if pref in remaining:
            remaining.remove(pref)
            result.append(pref)
        elif os.path.isdir(pref):
            result.append(pref)
    return result + remaining


def read_runtime(path):
    """Read a runtime's version descriptor. Unreadable means version 0.0.0."""
    instance = RuntimeInstance(path=path)
    try:
        values = appconfig.read_vars(
            os.path.join(path, VERSION_DESCRIPTOR_PATH), "version descriptor"
        )
    except ConfigError as exc:
        logger.debug("%s", exc.message)
        return instance

    def as_list(value):
        return value if isinstance(value, list) else ([value] if value else [])

    instance.version = values.get("Version") or NO_VERSION
    instance.change_list = as_list(values.get("ChangeList"))
    instance.fix_list = as_list(values.get("FixList"))
    instance.desc_major = as_list(values.get("DescMajor"))
    return instance


# ── Selection ────────────────────────────────────────────────────────────────

def prune_ignore_list(ignore_versions, version):
    """Keep only ignored versions newer than *version*."""
    return [v for v in ignore_versions if versions.vcmp(v, ">", version)]


def locate(app, payload_path="", ignore_versions=(), search=spotlight_search):
    """Find runtime instances for *app* and classify them.

    *payload_path* is the app's configured payload path, if any. The
    returned LocateResult carries the pruned ignore list, which the caller
    should store back into the app's configuration.
    """
    my_version = app.version
    ignore = prune_ignore_list(ignore_versions, my_version)

    preferred = []
    if payload_path and os.path.isdir(payload_path):
        adjacent = payload_adjacent_path(payload_path)
        if adjacent:
            preferred.append(adjacent)
    for path in (USER_RUNTIME_PATH, GLOBAL_RUNTIME_PATH):
        if path not in preferred:
            preferred.append(path)

    paths = candidate_paths(preferred, search())
    release_only = versions.is_release(my_version)

    current = latest = update = None
    for path in paths:
        if not os.path.isdir(path):
            continue
        inst = read_runtime(path)

        if release_only and not inst.is_release:
            logger.debug("Ignoring '%s' (beta version %s).", path, inst.version)
            continue
        if versions.vcmp(inst.version, "<", my_version):
            if versions.vcmp(inst.version, ">", NO_VERSION):
                logger.debug("Ignoring '%s' (old version %s).", path, inst.version)
            else:
                logger.debug("Ignoring '%s' (unable to get version).", path)
            continue

        logger.debug("Found %s %s at '%s'.", RUNTIME_NAME, inst.version, path)
        inst.path = os.path.realpath(path)

        if versions.vcmp(inst.version, "==", my_version):
            if current is None:
                current = inst
        elif any(versions.vcmp(v, "=", inst.version) for v in ignore):
            logger.debug("Ignoring version %s for updating.", inst.version)
        elif update is None or versions.vcmp(update.version, "<", inst.version):
            update = inst

        if latest is None or versions.vcmp(latest.version, "<", inst.version):
            latest = inst

    cannot_create = current is None and (
        (latest is None and not payload_path) or app.engine_type.is_internal
    )
    if cannot_create:
        logger.debug("No runtime available to create an engine payload.")
        if update is None and latest is not None \
                and versions.vcmp(latest.version, ">", my_version):
            update = latest

    if current:
        logger.debug("Current version (%s) found at '%s'.", my_version, current.path)
    if latest and latest is not current:
        logger.debug("Latest version (%s) found at '%s'.", latest.version, latest.path)
    if update and update is not latest:
        logger.debug("Update version (%s) found at '%s'.", update.version, update.path)

    if current and latest and update:
        outcome = LocateOutcome.RESOLVED
    elif latest and update:
        outcome = LocateOutcome.LATEST_UPDATE
    elif current and latest:
        outcome = LocateOutcome.CURRENT_LATEST
    elif latest:
        outcome = LocateOutcome.LATEST_ONLY
    else:
        outcome = LocateOutcome.NOTHING

    return LocateResult(
        outcome=outcome,
        current=current,
        latest=latest,
        update=update,
        cannot_create=cannot_create,
        ignore_versions=ignore,
    )
