"""Webwrap – dialogs.

Dialogs are shown with rumps. A dialog has a default button, an optional
second button and an optional cancel button. Choosing the cancel button
returns the CANCELLED sentinel instead of a label, so callers can tell
"backed out" from any real choice.

Tests (and anything else without a window server) install their own
presenter with set_presenter().
"""

import logging

from config import RUNTIME_NAME
from errors import DialogError

logger = logging.getLogger(__name__)


class _Cancelled:
    def __repr__(self):
        return "CANCELLED"

    def __bool__(self):
        return False


CANCELLED = _Cancelled()

_presenter = None


def set_presenter(presenter):
    """Replace the dialog presenter. None restores the rumps presenter.

    A presenter is called as presenter(message, title, buttons, cancel) and
    returns the chosen label or CANCELLED.
    """
    global _presenter
    _presenter = presenter


def rumps_presenter(message, title, buttons, cancel):
    import rumps  # only available on macOS

    if len(buttons) > 2:
        raise DialogError("Too many buttons for dialog.")
    response = rumps.alert(
        title=title,
        message=message,
        ok=buttons[0],
        cancel=cancel,
        other=buttons[1] if len(buttons) > 1 else None,
    )
    if response == 1:
        return buttons[0]
    if response == -1 and len(buttons) > 1:
        return buttons[1]
    return CANCELLED


def dialog(message, title=RUNTIME_NAME, buttons=("OK",), cancel=None):
    """Show a dialog and return the chosen button label or CANCELLED."""
    presenter = _presenter or rumps_presenter
    try:
        result = presenter(message, title, tuple(buttons), cancel)
    except DialogError:
        raise
    except Exception as exc:
        raise DialogError(f"Unable to display dialog box: {exc}") from exc
    if result is CANCELLED:
        logger.debug("Dialog '%s' cancelled.", title)
    else:
        logger.debug("Dialog '%s': chose '%s'.", title, result)
    return result


def alert(message, title=RUNTIME_NAME):
    """Show a one-button message. Failures are logged, never raised."""
    try:
        dialog(message, title, ("OK",))
    except DialogError as exc:
        logger.error("%s (message was: %s)", exc.message, message)
