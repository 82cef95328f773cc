"""
Exceptions raised by the backup engine and the Flickr adapter.
"""


class FlickrSyncError(Exception):
    """Base class for everything raised by flickrsync."""


class InvalidDateError(FlickrSyncError, ValueError):
    """A photo's capture date is missing or not of the form YYYY-MM-DD..."""


class SizeUnavailableError(FlickrSyncError, LookupError):
    """The size listing has no entry for a requested rendition."""


class WindowParseError(FlickrSyncError, ValueError):
    """A modified_since expression does not match <n><h|d|w|M>."""


class FlickrAPIError(FlickrSyncError):
    """
    Transport failure, unparseable response or a 'fail' status from the API.
    """

    def __init__(self, message: str, code=None):
        super().__init__(message)
        self.message = message
        self.code = code

    def __str__(self):
        if self.code is not None:
            return f"[{self.code}] {self.message}"
        return self.message


class AuthError(FlickrSyncError, ValueError):
    """No API credentials, or the OAuth exchange with Flickr failed."""
