"""
Defines types shared by the transport and the response cache.

These types are as simple as possible in order to most conveniently consume and
produce instances of them.
"""

from dataclasses import dataclass, field
import time
from typing import Mapping, Optional


@dataclass
class Request:
    """
    Represents an outgoing request, excluding parts not used for caching.

    The body does not affect caching, and so we exclude it.
    """

    method: str
    """
    The HTTP method of the request. E.g., "GET".
    """

    uri: str
    """
    The fully resolved URL of the resource being requested, query included.
    """

    headers: Mapping[str, str]
    """
    All the headers being sent with the request.
    """

    @property
    def key(self) -> str:
        """
        The cache identity of the request. Two requests with the same method and
        URL share one cache entry.
        """
        return '{} {}'.format(self.method, self.uri)


@dataclass
class Response:
    """
    Represents a response, without any bells and whistles.

    The body is fully read. Callers get bytes, never a stream.
    """

    status: int
    """
    The status code of the response. E.g., 200 or 400.
    """

    reason: str
    """
    The reason string, which relates to the status code.
    """

    headers: Mapping[str, str]
    """
    All the headers sent with the response.
    """

    body: bytes = field(default=b'', repr=False)
    """
    The response payload.
    """


@dataclass
class CacheEntry:
    """
    A cache entry.

    Besides the request and response it carries the freshness markers that were
    derived when the response was stored.
    """

    request: Request
    response: Response

    expires: Optional[float] = None
    """
    Epoch timestamp after which the entry is stale. `None` means it is always
    stale.
    """

    etag: Optional[str] = None

    size: int = 0
    """
    Number of payload bytes the entry accounts for in the cache budget.
    """

    def is_stale(self, now: Optional[float] = None) -> bool:
        if self.expires is None:
            return True
        if now is None:
            now = time.time()
        return now >= self.expires
