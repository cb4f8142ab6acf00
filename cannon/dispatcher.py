"""
The dispatcher: one per process, loaded once, fired many times.

Load the cannon first, then fire requests at resource points::

    cannon.load(Config(cache_directory=Path('cache')), app_name='myapp')
    cannon.fire('GET', users, {'page': '2'}, on_success=show, on_error=complain)

Callbacks arrive through the dispatcher's delivery, never on the caller's
stack. Everything that goes wrong after `fire()` returns is reported to
`on_error`.
"""

from concurrent.futures import Future, ThreadPoolExecutor
from enum import Enum
import logging
import threading
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from PIL import Image

from .adapter import CachingTransport
from .cache import DiskCache, HttpAwareCache
from .config import Config, DEFAULT_APP_NAME, DEFAULT_VERSION, Identity, default_identity
from .delivery import Delivery, ExecutorDelivery
from .errors import NotLoadedError, StatusError
from .image_cache import ImageLruCache, image_cache_key
from .multipart import FilePart
from .parser import ImageResponseParser
from .request import DEFAULT_USER_AGENT, ErrorCallback, FireRequest, MultipartRequest, SuccessCallback
from .resource import ResourcePoint
from .transport import RequestsTransport, Transport
from .util import clamp


logger = logging.getLogger(__name__)

IdentityProvider = Callable[[str], Identity]


class State(Enum):
    UNLOADED = 'unloaded'
    LOADING = 'loading'
    LOADED = 'loaded'


_lock = threading.Lock()
_state = State.UNLOADED
_instance: Optional['Dispatcher'] = None
_app_version = DEFAULT_VERSION
_user_agent = DEFAULT_USER_AGENT


class Dispatcher:
    """
    Owns the response cache, the image cache and the worker pool.

    Use `load()` to get the process-wide instance rather than constructing one.
    """

    def __init__(self, config: Config, user_agent: str, transport: Optional[Transport] = None,
                 delivery: Optional[Delivery] = None) -> None:
        self.__config = config
        self.__user_agent = user_agent
        self.__cache = HttpAwareCache(DiskCache(config.cache_directory, config.cache_budget,
                                                config.cache_directory_levels),
                                      default_ttl=config.default_ttl)
        if transport is None:
            transport = RequestsTransport(timeout=config.timeout)
        self.__transport = CachingTransport(self.__cache, transport)
        self.__image_cache = ImageLruCache(config.image_cache_budget)
        self.__delivery = delivery if delivery is not None else ExecutorDelivery()
        self.__executor = ThreadPoolExecutor(max_workers=clamp(config.workers, 1, 20),
                                             thread_name_prefix='cannon-worker')
        self.__image_listeners: Dict[str, List[Tuple[SuccessCallback, ErrorCallback]]] = {}
        self.__image_futures: Dict[str, Future] = {}
        self.__image_lock = threading.Lock()

    @property
    def config(self) -> Config:
        return self.__config

    @property
    def user_agent(self) -> str:
        return self.__user_agent

    @property
    def cache(self) -> HttpAwareCache:
        return self.__cache

    @property
    def image_cache(self) -> ImageLruCache:
        return self.__image_cache

    @property
    def delivery(self) -> Delivery:
        return self.__delivery

    def fire(self,
             method: str,
             resource: ResourcePoint,
             params: Optional[Mapping[str, str]] = None,
             on_success: Optional[SuccessCallback] = None,
             on_error: Optional[ErrorCallback] = None,
             *,
             placeholders: Optional[Mapping[str, str]] = None,
             query: Optional[Mapping[str, str]] = None,
             token: Optional[str] = None,
             headers: Optional[Mapping[str, str]] = None) -> Future:
        """
        Schedule a request for `resource`.

        For GET requests `params` become query parameters. For all other
        methods they are sent in the body.

        @return
          A future that completes once the outcome has been posted for delivery.
        """
        url = resource.get_url(placeholders, query, self.__config.encoding)
        request = FireRequest(method, url, resource.parser,
                              params=params,
                              token=token,
                              headers=headers,
                              user_agent=self.__user_agent,
                              on_success=on_success,
                              on_error=on_error,
                              encoding=self.__config.encoding)
        return self.submit(request)

    def fire_multipart(self,
                       method: str,
                       resource: ResourcePoint,
                       files: Mapping[str, FilePart],
                       params: Optional[Mapping[str, str]] = None,
                       on_success: Optional[SuccessCallback] = None,
                       on_error: Optional[ErrorCallback] = None,
                       *,
                       placeholders: Optional[Mapping[str, str]] = None,
                       token: Optional[str] = None,
                       headers: Optional[Mapping[str, str]] = None) -> Future:
        """
        Schedule a multipart/form-data upload of `files` and `params`.

        @throws MultipartError
          Right away, if a file cannot be read.
        """
        url = resource.get_url(placeholders, None, self.__config.encoding)
        request = MultipartRequest(method, url, resource.parser, files,
                                   params=params,
                                   token=token,
                                   headers=headers,
                                   user_agent=self.__user_agent,
                                   on_success=on_success,
                                   on_error=on_error)
        return self.submit(request)

    def submit(self, request: FireRequest) -> Future:
        logger.info('Queueing {!r}'.format(request))
        return self.__executor.submit(self._run, request)

    def load_image(self,
                   url: str,
                   on_success: SuccessCallback,
                   on_error: ErrorCallback,
                   max_width: int = 0,
                   max_height: int = 0) -> Future:
        """
        Fetch and decode an image.

        Decoded images are served from memory when possible. Concurrent requests
        for the same image share one fetch.
        """
        key = image_cache_key(url, max_width, max_height)
        image = self.__image_cache.get(key)
        if image is not None:
            logger.info('Serving image {} from memory'.format(key))
            self.__delivery.post(on_success, image)
            future = Future()
            future.set_result(None)
            return future

        with self.__image_lock:
            listeners = self.__image_listeners.get(key)
            if listeners is not None:
                logger.info('Joining the in-flight fetch of image {}'.format(key))
                listeners.append((on_success, on_error))
                return self.__image_futures[key]

            self.__image_listeners[key] = [(on_success, on_error)]
            request = FireRequest('GET', url, ImageResponseParser(max_width, max_height),
                                  user_agent=self.__user_agent)
            future = self.__executor.submit(self._run_image, key, request)
            self.__image_futures[key] = future
            return future

    def _perform(self, request: FireRequest) -> Any:
        response = self.__transport.execute(request.method, request.url, request.prepared_headers(), request.body)
        if not 200 <= response.status < 300:
            raise StatusError(response)
        return request.parser.parse(response.body, response.headers)

    def _run(self, request: FireRequest) -> None:
        try:
            result = self._perform(request)
        except Exception as e:
            logger.info('{!r} failed: {}'.format(request, e))
            self.__delivery.post(request.deliver_error, e)
            return
        logger.info('{!r} succeeded'.format(request))
        self.__delivery.post(request.deliver_response, result)

    def _take_image_listeners(self, key: str) -> List[Tuple[SuccessCallback, ErrorCallback]]:
        with self.__image_lock:
            self.__image_futures.pop(key, None)
            return self.__image_listeners.pop(key, [])

    def _run_image(self, key: str, request: FireRequest) -> None:
        try:
            image: Image.Image = self._perform(request)
        except Exception as e:
            logger.info('Image {} failed: {}'.format(key, e))
            for _, on_error in self._take_image_listeners(key):
                self.__delivery.post(on_error, e)
            return

        self.__image_cache.put(key, image)
        for on_success, _ in self._take_image_listeners(key):
            self.__delivery.post(on_success, image)


def _resolve_user_agent(app_name: str, identity_provider: IdentityProvider) -> Tuple[str, str]:
    try:
        identity = identity_provider(app_name)
        return identity.version, identity.user_agent
    except Exception as e:
        logger.warning('Could not identify {}, falling back to the default user agent: {}'.format(app_name, e))
        return DEFAULT_VERSION, DEFAULT_USER_AGENT


def load(config: Optional[Config] = None,
         app_name: str = DEFAULT_APP_NAME,
         identity_provider: Optional[IdentityProvider] = None,
         transport: Optional[Transport] = None,
         delivery: Optional[Delivery] = None) -> Dispatcher:
    """
    Load the cannon! You cannot fire anything before it is loaded.

    Only the first call builds the dispatcher. Later calls return the same
    instance and ignore their arguments.
    """
    global _state, _instance, _app_version, _user_agent

    with _lock:
        if _state is State.LOADED:
            return _instance

        _state = State.LOADING
        logger.info('Loading the dispatcher')
        try:
            version, user_agent = _resolve_user_agent(app_name, identity_provider or default_identity)
            instance = Dispatcher(config or Config(), user_agent, transport, delivery)
        except Exception:
            _state = State.UNLOADED
            raise

        _app_version = version
        _user_agent = user_agent
        _instance = instance
        _state = State.LOADED
        logger.info('Dispatcher loaded with user agent {}'.format(user_agent))
        return _instance


def state() -> State:
    with _lock:
        return _state


def instance() -> Dispatcher:
    """
    @throws NotLoadedError
      If `load()` has not completed.
    """
    with _lock:
        if _state is not State.LOADED:
            raise NotLoadedError()
        return _instance


def fire(method: str,
         resource: ResourcePoint,
         params: Optional[Mapping[str, str]] = None,
         on_success: Optional[SuccessCallback] = None,
         on_error: Optional[ErrorCallback] = None,
         **kwargs) -> Future:
    """
    Fire a request with the loaded dispatcher. See `Dispatcher.fire`.

    @throws NotLoadedError
      If the cannon is not loaded. Nothing is scheduled.
    """
    return instance().fire(method, resource, params, on_success, on_error, **kwargs)


def fire_multipart(method: str,
                   resource: ResourcePoint,
                   files: Mapping[str, FilePart],
                   params: Optional[Mapping[str, str]] = None,
                   on_success: Optional[SuccessCallback] = None,
                   on_error: Optional[ErrorCallback] = None,
                   **kwargs) -> Future:
    return instance().fire_multipart(method, resource, files, params, on_success, on_error, **kwargs)


def load_image(url: str, on_success: SuccessCallback, on_error: ErrorCallback,
               max_width: int = 0, max_height: int = 0) -> Future:
    return instance().load_image(url, on_success, on_error, max_width, max_height)


def get_user_agent() -> str:
    with _lock:
        return _user_agent


def get_app_version() -> str:
    with _lock:
        return _app_version
