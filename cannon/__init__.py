"""
Declarative, cache-backed HTTP requests with asynchronous callbacks.
"""

from .config import Config, Identity
from .delivery import Delivery, ExecutorDelivery, InlineDelivery, QueueDelivery
from .dispatcher import (Dispatcher, State, fire, fire_multipart, get_app_version, get_user_agent, instance,
                         load, load_image)
from .errors import (CacheError, CannonError, MultipartError, NotLoadedError, ParseError, StatusError,
                     TransportError)
from .parser import ImageResponseParser, JsonResponseParser, ResponseParser, StringResponseParser
from .resource import ResourcePoint


__all__ = [
    'CacheError', 'CannonError', 'Config', 'Delivery', 'Dispatcher', 'ExecutorDelivery', 'Identity',
    'ImageResponseParser', 'InlineDelivery', 'JsonResponseParser', 'MultipartError', 'NotLoadedError',
    'ParseError', 'QueueDelivery', 'ResourcePoint', 'ResponseParser', 'State', 'StatusError',
    'StringResponseParser', 'TransportError', 'fire', 'fire_multipart', 'get_app_version', 'get_user_agent',
    'instance', 'load', 'load_image',
]
