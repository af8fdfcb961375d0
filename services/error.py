import sys
import traceback
import services.logger as log

# Initialize logger
l = log.get_logger()


class RelayError(Exception):
    """Base class for errors raised while normalizing or relaying a message."""


class LookupFailed(RelayError):
    """A user, bot or channel lookup failed; the event is dropped."""


class ValidationRejected(RelayError):
    """The normalized message did not pass the validity gate."""


class EmptyMessage(ValidationRejected):
    def __init__(self, message: str = "empty message and not a deleted message"):
        super().__init__(message)


class UnresolvedEcho(ValidationRejected):
    def __init__(
        self,
        message: str = "probably an incoming webhook we couldn't resolve (maybe ourselves)",
    ):
        super().__init__(message)


class DownloadError(RelayError):
    """A single attachment could not be fetched; the message itself survives."""


class FatalAuthError(RelayError):
    """The live session reported invalid or revoked credentials."""


def _handle_uncaught_exceptions(exc_type, exc_value, exc_traceback):
    """Global exception handler for uncaught exceptions."""
    if issubclass(exc_type, KeyboardInterrupt):
        # Call default handler for keyboard interrupt (e.g. Ctrl+C)
        sys.__excepthook__(exc_type, exc_value, exc_traceback)
        return

    # Log the full traceback for debugging
    l.critical(
        "Unhandled exception caught:\n"
        + ''.join(traceback.format_exception(exc_type, exc_value, exc_traceback))
    )


def install_excepthook() -> None:
    sys.excepthook = _handle_uncaught_exceptions


# Install global exception hook
install_excepthook()
