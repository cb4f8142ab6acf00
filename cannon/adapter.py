import logging
from typing import Mapping

from .cache import Cache
from .model import Request, Response
from .transport import Transport


logger = logging.getLogger(__name__)


class CachingTransport(Transport):
    """
    A transport that answers from a response cache when it can.
    """
    invalidating_methods = {"PUT", "DELETE"}

    def __init__(self, cache: Cache, transport: Transport) -> None:
        self.cache = cache
        self.transport = transport

    def execute(self, method: str, url: str, headers: Mapping[str, str], body: bytes) -> Response:
        """
        Send a request. Use the request information to see if it
        exists in the cache and cache the response if we need to and can.
        """
        # Steps:
        # 1. Check the cache for an entry matching the request.
        # 2. If the entry is fresh, answer with its response.
        # 3. Otherwise run the inner transport, then offer the response to the
        #    cache, which replaces the stale entry if it accepts the new one.
        # 4. A successful PUT or DELETE makes any cached GET for the same URL obsolete.
        request = Request(method=method, uri=url, headers=dict(headers))

        entry = self.cache.get(request)
        if entry is not None and not entry.is_stale():
            logger.info('Serving {} {} from the cache'.format(method, url))
            return entry.response

        if entry is None:
            logger.info('No valid cached entry for {} {}. Need to make the request.'.format(method, url))
        else:
            logger.info('Cached entry for {} {} is stale. Need to make the request.'.format(method, url))

        response = self.transport.execute(method, url, headers, body)
        self.cache.add(request, response)

        if method in self.invalidating_methods and 200 <= response.status < 300:
            logger.info('{} invalidates any cached GET for {}'.format(method, url))
            self.cache.delete(Request(method='GET', uri=url, headers={}))
        return response

    def close(self):
        self.cache.close()
        self.transport.close()
