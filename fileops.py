"""Webwrap – transactional file operations.

Every write to a permanent path goes through stage() + commit(): the new
content is built at a temp name beside the target, the old target is moved
aside, the new one is moved into place, and only then is the old one
deleted. A crash at any point leaves either the old or the new version at
the permanent path, never a fragment.
"""

import json
import logging
import os
import plistlib
import random
import shutil
import time

from errors import FileOpError, SafetyError

logger = logging.getLogger(__name__)


# ── Temp names ───────────────────────────────────────────────────────────────

def tempname(path, suffix=""):
    """Return a name beside *path* that doesn't exist yet."""
    result = f"{path}.{random.randint(0, 32767)}{suffix}"
    while os.path.lexists(result):
        result = f"{result}.{random.randint(0, 32767)}{suffix}"
    return result


def stage(path):
    """Reserve a temp path for building a new version of *path*."""
    parent = os.path.dirname(path)
    if parent:
        try:
            os.makedirs(parent, exist_ok=True)
        except OSError as exc:
            raise FileOpError(f"Unable to create directory '{parent}'.") from exc
    return tempname(path)


# ── Removal ──────────────────────────────────────────────────────────────────

def remove_path(path):
    """Delete a file, link or directory tree. Missing paths are fine."""
    if os.path.islink(path) or os.path.isfile(path):
        os.unlink(path)
    elif os.path.isdir(path):
        shutil.rmtree(path)
    elif os.path.lexists(path):
        os.unlink(path)


def discard(temp, what="file"):
    """Remove a temp path, logging (not raising) any failure.

    Returns True if the temp path is gone.
    """
    if not os.path.lexists(temp):
        return True
    try:
        remove_path(temp)
        return True
    except OSError as exc:
        logger.warning("Unable to remove temporary %s. (%s)", what, exc)
        return False


# ── Commit ───────────────────────────────────────────────────────────────────

def commit(temp, permanent, what="file"):
    """Move *temp* into place at *permanent*, replacing any old version.

    If the move fails, the old version is restored and the original error
    is raised.
    """
    held = None
    if os.path.lexists(permanent):
        held = tempname(permanent)
        try:
            os.rename(permanent, held)
        except OSError as exc:
            discard(temp, what)
            raise FileOpError(f"Unable to move old {what}.") from exc

    try:
        os.rename(temp, permanent)
    except OSError as exc:
        message = f"Unable to move new {what} into place."
        if held:
            try:
                os.rename(held, permanent)
            except OSError:
                message += f" Also unable to restore old {what}."
        discard(temp, what)
        raise FileOpError(message) from exc

    if held:
        try:
            remove_path(held)
        except OSError as exc:
            # the new version is in place, so this only leaves clutter
            logger.warning("Unable to remove old %s at '%s': %s", what, held, exc)


# ── Writers ──────────────────────────────────────────────────────────────────

def write_bytes(path, data, what="file"):
    temp = stage(path)
    try:
        with open(temp, "wb") as fh:
            fh.write(data)
    except OSError as exc:
        discard(temp, what)
        raise FileOpError(f"Unable to write {what}.") from exc
    commit(temp, path, what)


def write_text(path, text, what="file"):
    write_bytes(path, text.encode("utf-8"), what)


def write_json(path, obj, what="file", indent=3):
    write_text(path, json.dumps(obj, indent=indent) + "\n", what)


def write_plist(path, obj, what="property list"):
    write_bytes(path, plistlib.dumps(obj), what)


def safe_copy(src, dst, what="file"):
    """Copy a file or directory tree to *dst* through a temp copy."""
    temp = stage(dst)
    try:
        if os.path.isdir(src) and not os.path.islink(src):
            shutil.copytree(src, temp, symlinks=True)
        else:
            shutil.copy2(src, temp, follow_symlinks=False)
    except (OSError, shutil.Error) as exc:
        discard(temp, what)
        raise FileOpError(f"Unable to copy {what}.") from exc
    commit(temp, dst, what)


def _link_or_copy(src, dst):
    try:
        os.link(src, dst)
    except OSError:
        # different volume
        shutil.copy2(src, dst)


def link_tree(src, dst, what="files"):
    """Recreate *src* at *dst*, hard linking files where possible."""
    try:
        shutil.copytree(src, dst, symlinks=True, copy_function=_link_or_copy)
    except (OSError, shutil.Error) as exc:
        raise FileOpError(f"Unable to link {what}.") from exc


# ── Guarded delete ───────────────────────────────────────────────────────────

def is_subpath(path, root):
    """True if *path* is strictly inside *root*."""
    if not path or not root:
        return False
    path = os.path.abspath(path)
    root = os.path.abspath(root)
    return path != root and path.startswith(root.rstrip(os.sep) + os.sep)


def check_inside(path, roots, what="path"):
    """Raise SafetyError unless *path* is inside every one of *roots*."""
    for root in roots:
        if not is_subpath(path, root):
            raise SafetyError(
                f"Refusing to delete {what} '{path}' outside of '{root}'."
            )


def safe_rmtree(path, roots, what="directory"):
    """Recursively delete *path* after checking it against *roots*."""
    check_inside(path, roots, what)
    try:
        remove_path(path)
    except OSError as exc:
        raise FileOpError(f"Unable to delete {what}.") from exc


def remove_children(directory, keep=(), roots=(), what="files"):
    """Delete everything inside *directory* except names in *keep*.

    Returns a list of error messages for items that couldn't be removed.
    """
    check_inside(directory, roots, what)
    errors = []
    try:
        names = sorted(os.listdir(directory))
    except FileNotFoundError:
        return errors
    except OSError as exc:
        return [f"Unable to list {what} ({exc.strerror})."]
    for name in names:
        if name in keep:
            continue
        try:
            remove_path(os.path.join(directory, name))
        except OSError as exc:
            logger.error("Unable to delete '%s': %s", name, exc)
            errors.append(f"Unable to delete {name}.")
    return errors


# ── Waiting ──────────────────────────────────────────────────────────────────

def wait_for(condition, description, timeout, interval=0.5, sleep=time.sleep):
    """Poll *condition* until it's true or *timeout* seconds have passed.

    Returns True if the condition came true, False on timeout.
    """
    waited = 0.0
    while True:
        if condition():
            if waited:
                logger.debug("Waited %.1fs for %s.", waited, description)
            return True
        if waited >= timeout:
            logger.error("Timed out waiting for %s.", description)
            return False
        sleep(interval)
        waited += interval
