"""Webwrap – error types."""


class WebwrapError(Exception):
    """Base error. The message is meant to be shown to the user."""

    fatal = False

    def __init__(self, message=""):
        super().__init__(message)
        self.message = message


class FatalError(WebwrapError):
    """Raised when a condition must abort the launch."""

    fatal = True


class FileOpError(WebwrapError):
    """Raised when a filesystem move, copy or delete fails."""


class ConfigError(WebwrapError):
    """Raised when a config file or environment identity can't be used."""


class SafetyError(FatalError):
    """Raised when a destructive operation targets a path outside its roots."""


class PayloadError(FatalError):
    """Raised when the engine payload is in a state the app can't run from."""


class LockError(WebwrapError):
    """Raised when another live process holds the app lock."""


class DialogError(WebwrapError):
    """Raised when a dialog could not be shown."""


class UpdateCheckError(WebwrapError):
    """Raised when the remote release check fails."""


class LaunchError(WebwrapError):
    """Raised when the engine process fails to start."""
