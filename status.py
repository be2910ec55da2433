"""Webwrap – run status channel.

A Status tracks whether the current logical run is still ok and, if not,
why. Long call chains go through attempt(), which skips work once something
has failed, so callers don't need to branch after every step. Cleanup goes
through always() or the cleanup() block, which run regardless and merge any
new failure into the existing message.
"""

import logging
from contextlib import contextmanager

from errors import WebwrapError

logger = logging.getLogger(__name__)

# errors attempt() turns into a failed status instead of propagating
HANDLED_ERRORS = (WebwrapError, OSError)


def merge_messages(old, new):
    """Join an earlier failure message with a later one."""
    if old and new:
        return f"{old} Also: {new}"
    return old or new


def combine_errors(messages, first="Unable", joiner=" Also unable"):
    """Combine independent non-fatal errors into one sentence-style message.

    Each message is expected to read as a continuation of "Unable ...", e.g.
    "to write to the bookmarks file."
    """
    result = ""
    for msg in messages:
        if not msg:
            continue
        result += f"{joiner if result else first} {msg}"
    return result


class Status:
    def __init__(self):
        self.ok = True
        self.message = ""
        self.fatal = False

    def __bool__(self):
        return self.ok

    def __repr__(self):
        return f"Status(ok={self.ok!r}, message={self.message!r})"

    # ── Recording failures ───────────────────────────────────────────────

    def merge(self, message, fatal=False):
        """Record a secondary failure without losing the first one."""
        if not message:
            return
        if self.ok:
            self.ok = False
            self.message = message
        else:
            self.message = merge_messages(self.message, message)
        self.fatal = self.fatal or fatal
        logger.error(message, stacklevel=2)

    # ── Running steps ────────────────────────────────────────────────────

    def attempt(self, func, *args, errmsg=None, **kwargs):
        """Run *func* only if the run is still ok.

        A WebwrapError or OSError marks the run failed; the error's own
        message is used unless *errmsg* is given. Returns func's result, or
        None if skipped or failed.
        """
        if not self.ok:
            return None
        try:
            return func(*args, **kwargs)
        except HANDLED_ERRORS as exc:
            self._record(exc, errmsg, merge=False)
            return None

    def always(self, func, *args, errmsg=None, **kwargs):
        """Run *func* whether or not the run already failed."""
        try:
            return func(*args, **kwargs)
        except HANDLED_ERRORS as exc:
            self._record(exc, errmsg, merge=True)
            return None

    @contextmanager
    def cleanup(self, errmsg=None):
        """Block that always runs; a failure inside is merged, not raised."""
        try:
            yield self
        except HANDLED_ERRORS as exc:
            self._record(exc, errmsg, merge=True)

    def _record(self, exc, errmsg, merge):
        message = errmsg or getattr(exc, "message", "") or str(exc)
        fatal = getattr(exc, "fatal", False)
        logger.debug("%s: %s", type(exc).__name__, exc)
        if merge:
            self.merge(message, fatal=fatal)
        else:
            self.ok = False
            self.message = message
            self.fatal = self.fatal or fatal
            logger.error(message, stacklevel=3)
