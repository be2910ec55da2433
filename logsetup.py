"""Webwrap – logging setup.

Every record carries a context label (source file, function and line) so a
failure in the log can be traced back to the call that raised it.
"""

import logging
import os

LOG_FORMAT = (
    "%(asctime)s [%(levelname)s] %(name)s "
    "%(filename)s|%(funcName)s(%(lineno)d) – %(message)s"
)


def setup_logging(log_file=None, debug=False, preserve=False):
    """Configure the root logger for stderr plus an optional log file.

    Unless *preserve* is set, an existing log file is truncated so each run
    starts with a clean log.
    """
    handlers = [logging.StreamHandler()]

    if log_file:
        try:
            os.makedirs(os.path.dirname(log_file), exist_ok=True)
            handlers.append(
                logging.FileHandler(
                    log_file, mode="a" if preserve else "w", encoding="utf-8"
                )
            )
        except OSError as exc:
            # stderr still works, so keep going without the file
            logging.getLogger(__name__).warning(
                "Unable to open log file '%s': %s", log_file, exc
            )

    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )
    return logging.getLogger("webwrap")
