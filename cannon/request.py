import logging
import threading
from typing import Any, Callable, Generic, Mapping, Optional, Tuple, TypeVar

from requests.structures import CaseInsensitiveDict

from .multipart import FilePart, build_multipart
from .parser import ResponseParser
from .resource import encode_pairs
from .util import DEFAULT_CHARSET


logger = logging.getLogger(__name__)

T = TypeVar('T')

DEFAULT_USER_AGENT = 'Cannon/0.0.1 (Python)'

SuccessCallback = Callable[[T], Any]
ErrorCallback = Callable[[Exception], Any]


class FireRequest(Generic[T]):
    """
    A request ready to be fired.

    For GET requests the params are treated as query parameters and appended to
    the URL. For every other method they are form-encoded into the body.

    Exactly one of the two callbacks is invoked, exactly once.
    """

    def __init__(self,
                 method: str,
                 url: str,
                 parser: ResponseParser[T],
                 params: Optional[Mapping[str, str]] = None,
                 token: Optional[str] = None,
                 headers: Optional[Mapping[str, str]] = None,
                 user_agent: str = DEFAULT_USER_AGENT,
                 on_success: Optional[SuccessCallback] = None,
                 on_error: Optional[ErrorCallback] = None,
                 encoding: str = DEFAULT_CHARSET) -> None:
        self.__method = method.upper()
        self.__parser = parser
        self.__params = dict(params) if params else {}
        self.__token = token
        self.__explicit_headers = dict(headers) if headers is not None else None
        self.__user_agent = user_agent
        self.__on_success = on_success
        self.__on_error = on_error
        self.__encoding = encoding
        self.__delivered = False
        self.__delivery_lock = threading.Lock()

        self.__url = url
        if self.__method == 'GET' and self.__params:
            query = encode_pairs(self.__params, encoding).join()
            if query:
                self.__url += ('&' if '?' in url else '?') + query

    @property
    def method(self) -> str:
        return self.__method

    @property
    def url(self) -> str:
        return self.__url

    @property
    def parser(self) -> ResponseParser[T]:
        return self.__parser

    @property
    def params(self) -> Mapping[str, str]:
        return self.__params

    @property
    def token(self) -> Optional[str]:
        return self.__token

    @property
    def encoding(self) -> str:
        return self.__encoding

    @property
    def cache_key(self) -> Tuple[str, str]:
        return self.__method, self.__url

    @property
    def headers(self) -> Mapping[str, str]:
        """
        Explicit headers when they were given. Otherwise the default headers: the
        user agent, plus the bearer token when there is one.
        """
        if self.__explicit_headers is not None:
            return self.__explicit_headers

        headers = {'User-Agent': self.__user_agent}
        if self.__token:
            headers['Authorization'] = 'Bearer {}'.format(self.__token)
        return headers

    @property
    def content_type(self) -> str:
        return 'application/x-www-form-urlencoded; charset={}'.format(self.__encoding.upper())

    @property
    def body(self) -> bytes:
        if self.__method == 'GET' or not self.__params:
            return b''
        return encode_pairs(self.__params, self.__encoding).join().encode('ascii')

    def prepared_headers(self) -> Mapping[str, str]:
        """
        The headers to send: `headers`, plus a Content-Type when there is a body
        and none was given.
        """
        headers = CaseInsensitiveDict(self.headers)
        if self.body and 'Content-Type' not in headers:
            headers['Content-Type'] = self.content_type
        return dict(headers.items())

    def _mark_delivered(self) -> bool:
        with self.__delivery_lock:
            if self.__delivered:
                logger.warning('Ignoring a second delivery for {} {}'.format(self.__method, self.__url))
                return False
            self.__delivered = True
            return True

    def deliver_response(self, result: T) -> None:
        if self._mark_delivered() and self.__on_success is not None:
            self.__on_success(result)

    def deliver_error(self, error: Exception) -> None:
        if self._mark_delivered() and self.__on_error is not None:
            self.__on_error(error)

    def __repr__(self) -> str:
        return '{}({!r}, {!r})'.format(type(self).__name__, self.__method, self.__url)


class MultipartRequest(FireRequest[T]):
    """
    A request whose body is multipart/form-data, built from files and string fields.

    The body is built when the request is constructed, so an unreadable file
    raises `MultipartError` right there.
    """

    def __init__(self,
                 method: str,
                 url: str,
                 parser: ResponseParser[T],
                 files: Mapping[str, FilePart],
                 params: Optional[Mapping[str, str]] = None,
                 token: Optional[str] = None,
                 headers: Optional[Mapping[str, str]] = None,
                 user_agent: str = DEFAULT_USER_AGENT,
                 on_success: Optional[SuccessCallback] = None,
                 on_error: Optional[ErrorCallback] = None,
                 boundary: Optional[str] = None) -> None:
        # The string fields travel inside the multipart body, never in the URL.
        super().__init__(method, url, parser, token=token, headers=headers, user_agent=user_agent,
                         on_success=on_success, on_error=on_error)
        self.__multipart = build_multipart(files, params, boundary)

    @property
    def content_type(self) -> str:
        return self.__multipart.content_type

    @property
    def body(self) -> bytes:
        return self.__multipart.payload
