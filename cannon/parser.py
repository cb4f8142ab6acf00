from abc import ABC, abstractmethod
from io import BytesIO
import json
import logging
from typing import Generic, Mapping, Optional, Type, TypeVar

from PIL import Image, UnidentifiedImageError

from .errors import ParseError
from .util import TypedJSONDecoder, parse_charset


logger = logging.getLogger(__name__)

T = TypeVar('T')


class ResponseParser(ABC, Generic[T]):
    """
    Turns a raw response body into the value handed to the success callback.

    Each resource point is bound to exactly one parser, so the result type is
    decided when the endpoint is declared rather than when the response arrives.
    """

    @abstractmethod
    def parse(self, body: bytes, headers: Mapping[str, str]) -> T:
        """
        Parse a response body.

        @param body
          The full response payload.
        @param headers
          The response headers. Used to find the charset, among other things.
        @return
          The parsed value.
        @throws ParseError
          If the body cannot be converted.
        """


def _decode_text(body: bytes, headers: Mapping[str, str]) -> str:
    charset = parse_charset(headers)
    try:
        return body.decode(charset)
    except LookupError as e:
        raise ParseError('Unknown charset {}'.format(charset)) from e
    except UnicodeDecodeError as e:
        raise ParseError('Response body is not valid {}'.format(charset)) from e


class StringResponseParser(ResponseParser[str]):
    def parse(self, body: bytes, headers: Mapping[str, str]) -> str:
        return _decode_text(body, headers)


class JsonResponseParser(ResponseParser[T]):
    def __init__(self, resource_class: Optional[Type[T]] = None) -> None:
        self.__resource_class = resource_class

    @property
    def resource_class(self) -> Optional[Type[T]]:
        return self.__resource_class

    def parse(self, body: bytes, headers: Mapping[str, str]) -> T:
        text = _decode_text(body, headers)
        try:
            return json.loads(text, cls=TypedJSONDecoder, class_type=self.__resource_class)
        except json.JSONDecodeError as e:
            raise ParseError('Malformed JSON: {}'.format(e)) from e
        except TypeError as e:
            raise ParseError('JSON does not describe the expected type: {}'.format(e)) from e


class ImageResponseParser(ResponseParser[Image.Image]):
    """
    Decodes image bytes with Pillow.

    When a maximum width or height is set the decoded image is scaled down to
    fit, keeping its aspect ratio. Zero means unbounded.
    """

    def __init__(self, max_width: int = 0, max_height: int = 0) -> None:
        self.__max_width = max_width
        self.__max_height = max_height

    def parse(self, body: bytes, headers: Mapping[str, str]) -> Image.Image:
        try:
            image = Image.open(BytesIO(body))
            # Force decoding now, on the worker, instead of lazily on first pixel access.
            image.load()
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as e:
            raise ParseError('Could not decode image: {}'.format(e)) from e

        if self.__max_width or self.__max_height:
            width = self.__max_width or image.width
            height = self.__max_height or image.height
            if image.width > width or image.height > height:
                logger.info('Scaling image from {}x{} to fit {}x{}'.format(image.width, image.height, width, height))
                image.thumbnail((width, height))
        return image
