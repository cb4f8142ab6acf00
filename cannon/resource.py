"""
Resource points and the URL template engine behind them.

A resource point is a declaration of one API endpoint: a base URL, a skeleton
path such as ``/user/{{ userId }}``, and the parser that turns its responses
into a value.
"""

from dataclasses import dataclass, field
import logging
import re
from typing import Generic, List, Mapping, Optional, Tuple, Type, TypeVar
from urllib.parse import quote_plus

from .parser import JsonResponseParser, ResponseParser, StringResponseParser
from .util import DEFAULT_CHARSET


logger = logging.getLogger(__name__)

T = TypeVar('T')

SKELETON_PATH_PATTERN = re.compile(r'^(?:/(?:(?:\{\{\s*\w+\s*\}{2})|(?:\w+-*\w*)))+$', re.ASCII)
PLACEHOLDER_KEY_PATTERN = re.compile(r'^\w+$', re.ASCII)
PLACEHOLDER_VALUE_PATTERN = re.compile(r'^\w+$', re.ASCII)


@dataclass
class EncodedPairs:
    """
    The outcome of encoding a parameter mapping.

    Pairs that encoded are kept in mapping order. Pairs that did not are listed
    in `failures` with the error that rejected them.
    """
    pairs: List[str] = field(default_factory=list)
    failures: List[Tuple[str, Exception]] = field(default_factory=list)

    def join(self) -> str:
        return '&'.join(self.pairs)


def encode_pairs(params: Optional[Mapping[str, str]], encoding: str = DEFAULT_CHARSET) -> EncodedPairs:
    """
    Form-encode each key/value pair. Spaces become ``+``.

    A pair that cannot be encoded in `encoding` is dropped and logged. The others
    are still encoded.
    """
    result = EncodedPairs()
    if not params:
        return result

    for key, value in params.items():
        try:
            result.pairs.append('{}={}'.format(quote_plus(str(key), encoding=encoding, errors='strict'),
                                               quote_plus(str(value), encoding=encoding, errors='strict')))
        except (UnicodeEncodeError, LookupError) as e:
            logger.warning('Skipping parameter {!r}, it cannot be encoded as {}: {}'.format(key, encoding, e))
            result.failures.append((key, e))
    return result


def resolve_path(skeleton: str, placeholders: Optional[Mapping[str, str]]) -> str:
    """
    Fill the placeholders of a skeleton path.

    A skeleton that does not look like ``/segment/{{ key }}/...`` is returned
    untouched, as is any skeleton when no placeholders are given. Keys and
    values must be ASCII word characters once trimmed; a pair that is not leaves its
    placeholder in the path.
    """
    if not placeholders or not SKELETON_PATH_PATTERN.match(skeleton):
        return skeleton

    path = skeleton
    for key, value in placeholders.items():
        key = key.strip() if key else ''
        value = value.strip() if value else ''
        if not (PLACEHOLDER_KEY_PATTERN.match(key) and PLACEHOLDER_VALUE_PATTERN.match(value)):
            logger.warning('Ignoring invalid placeholder {!r} = {!r}'.format(key, value))
            continue
        path = re.sub(r'\{\{\s*' + re.escape(key) + r'\s*\}{2}', lambda _: value, path)
    return path


def build_url(base_url: str, path: str, query: Optional[Mapping[str, str]] = None,
              encoding: str = DEFAULT_CHARSET) -> str:
    url = base_url + path
    encoded = encode_pairs(query, encoding)
    if encoded.pairs:
        url += '?' + encoded.join()
    return url


class ResourcePoint(Generic[T]):
    """
    An interface to a specific API endpoint.

    The parser is chosen once, at construction:
    - With `parser`, that parser is used.
    - With `resource_class`, responses are decoded as JSON into that class.
    - Otherwise responses are handed back as text.
    """

    def __init__(self,
                 base_url: str = 'http://127.0.0.1',
                 skeleton_path: str = '/',
                 parser: Optional[ResponseParser[T]] = None,
                 resource_class: Optional[Type[T]] = None) -> None:
        if parser is not None and resource_class is not None:
            raise ValueError('Give either a parser or a resource class, not both')

        self.__base_url = base_url
        self.__skeleton_path = skeleton_path
        if parser is not None:
            self.__parser = parser
        elif resource_class is not None:
            self.__parser = JsonResponseParser(resource_class)
        else:
            self.__parser = StringResponseParser()

    @property
    def base_url(self) -> str:
        return self.__base_url

    @property
    def skeleton_path(self) -> str:
        return self.__skeleton_path

    @property
    def parser(self) -> ResponseParser[T]:
        return self.__parser

    def with_skeleton_path(self, skeleton_path: str) -> 'ResourcePoint[T]':
        self.__skeleton_path = skeleton_path
        return self

    def get_resource_path(self, placeholders: Optional[Mapping[str, str]] = None) -> str:
        """
        @return
          The skeleton path with its placeholders filled, relative to the base URL.
        """
        return resolve_path(self.__skeleton_path, placeholders)

    def get_url(self,
                placeholders: Optional[Mapping[str, str]] = None,
                query: Optional[Mapping[str, str]] = None,
                encoding: str = DEFAULT_CHARSET) -> str:
        """
        Build the full URL of the endpoint.

        NOTE: Any query pair that cannot be encoded with `encoding` is left out.
        """
        return build_url(self.__base_url, self.get_resource_path(placeholders), query, encoding)

    def __repr__(self) -> str:
        return 'ResourcePoint({!r}, {!r})'.format(self.__base_url, self.__skeleton_path)
