import dataclasses
import json
from typing import Mapping, Optional, Type


DEFAULT_CHARSET = 'utf-8'


def clamp(value, min, max):
    return sorted((min, value, max))[1]


def parse_charset(headers: Mapping[str, str], default: str = DEFAULT_CHARSET) -> str:
    """
    Pull the charset parameter out of a Content-Type header.

    @param headers
      Response headers. The lookup is case-insensitive.
    @param default
      The charset to use when none is declared.
    """
    content_type = None
    for name, value in headers.items():
        if name.lower() == 'content-type':
            content_type = value
            break
    if not content_type:
        return default

    for parameter in content_type.split(';')[1:]:
        name, _, value = parameter.partition('=')
        if name.strip().lower() == 'charset' and value.strip():
            return value.strip().strip('"\'')
    return default


class TypedJSONDecoder(json.JSONDecoder):
    """
    Decodes JSON into an instance of `class_type`.

    Dataclasses are built from the decoded object's fields. Any other class
    must already be the type of the decoded value. With no class the plain
    decoded value is returned.
    """

    def __init__(self, class_type: Optional[Type] = None, **kwargs) -> None:
        super().__init__(**kwargs)
        self.__class_type = class_type

    def decode(self, s):
        result = super().decode(s)
        if self.__class_type is None:
            return result
        if dataclasses.is_dataclass(self.__class_type):
            if not isinstance(result, dict):
                raise TypeError('Expected a JSON object for {}, got {}'.format(
                    self.__class_type.__name__, type(result).__name__))
            return self.__class_type(**result)
        if not isinstance(result, self.__class_type):
            raise TypeError('Expected {}, got {}'.format(
                self.__class_type.__name__, type(result).__name__))
        return result
