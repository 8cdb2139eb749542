"""Exception hierarchy shared by the slideshow clients."""
from typing import Optional


class SlideshowError(Exception):
    """Base class for errors raised by the slideshow package."""


class APIRequestError(SlideshowError):
    """A remote service answered with a non-success status."""

    def __init__(self, message: str, status_code: Optional[int] = None,
                 retry_after: Optional[float] = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.retry_after = retry_after


class AuthenticationError(SlideshowError):
    """Credentials were rejected or are unavailable."""


class ResponseFormatError(SlideshowError):
    """A remote service answered with an unexpected body shape."""


class CaptionError(SlideshowError):
    """Caption generation failed; the message is safe to show to users."""


class PreferencesError(SlideshowError):
    """Preferences could not be loaded or persisted."""
