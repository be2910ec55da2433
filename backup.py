"""Webwrap – failsafe backup of the app bundle."""

import logging
import os
import tarfile

import fileops
from errors import FileOpError

logger = logging.getLogger(__name__)

FAILSAFE_FILE_NAME = "Failsafe.tgz"


def failsafe_path(app):
    return os.path.join(app.backup_path, FAILSAFE_FILE_NAME)


def update_failsafe(app, status):
    """Archive the app's Contents if it's new, changed or never backed up.

    Must run while the launcher is in Contents (payload inactive). Returns
    the archive path, or None if the existing backup is still current.
    """
    path = failsafe_path(app)
    if not (status.new_app or status.old_version or status.edited
            or not os.path.isfile(path)):
        return None

    temp = fileops.stage(path)
    try:
        with tarfile.open(temp, "w:gz") as tar:
            tar.add(app.contents_path, arcname="Contents")
    except (OSError, tarfile.TarError) as exc:
        logger.error("Unable to create archive: %s", exc)
        fileops.discard(temp, "backup archive")
        raise FileOpError("Unable to create failsafe backup.") from exc
    fileops.commit(temp, path, "failsafe backup")

    logger.debug("Created failsafe backup at '%s'.", path)
    return path
