"""
Errors surfaced to callers.

Callbacks receive these through `on_error`. Only `NotLoadedError` and
`MultipartError` are ever raised directly at the call site, since both happen
before any work is scheduled.
"""

from typing import Optional

from .model import Response


class CannonError(Exception):
    """
    Base class of every error the library reports.
    """


class NotLoadedError(CannonError):
    def __init__(self) -> None:
        super().__init__('The dispatcher is not loaded. Call cannon.load() before firing requests.')


class TransportError(CannonError):
    """
    The exchange with the server failed: connectivity, timeout, TLS and the like.
    """


class StatusError(TransportError):
    """
    The server answered, but not with a success status.
    """

    def __init__(self, response: Response) -> None:
        super().__init__('Server responded with {} {}'.format(response.status, response.reason))
        self.__response = response

    @property
    def response(self) -> Response:
        return self.__response

    @property
    def status(self) -> int:
        return self.__response.status


class ParseError(CannonError):
    """
    The response body could not be turned into the expected type.
    """


class CacheError(CannonError):
    """
    The persistent cache could not read or write its storage.
    """


class MultipartError(CannonError):
    """
    A multipart body could not be built, usually because a file part is unreadable.
    """

    def __init__(self, field: str, message: Optional[str] = None) -> None:
        super().__init__(message or 'Could not read the file for part "{}"'.format(field))
        self.__field = field

    @property
    def field(self) -> str:
        return self.__field
