from collections import OrderedDict
import logging
import threading
from typing import Optional, Tuple

from PIL import Image


logger = logging.getLogger(__name__)

DEFAULT_BUDGET = 32 * 1024 * 1024

_BYTES_PER_BAND = {
    'I': 4,
    'F': 4,
    'I;16': 2,
    'I;16B': 2,
    'I;16L': 2,
    'I;16N': 2,
}


def estimate_footprint(image: Image.Image) -> int:
    """
    Approximate the memory a decoded image occupies, in bytes.
    """
    bands = len(image.getbands())
    return image.width * image.height * bands * _BYTES_PER_BAND.get(image.mode, 1)


def image_cache_key(url: str, max_width: int = 0, max_height: int = 0) -> str:
    """
    Key for an image decoded at a given maximum size. The plain URL when unbounded.
    """
    if not max_width and not max_height:
        return url
    return '#W{}#H{}{}'.format(max_width, max_height, url)


class ImageLruCache:
    """
    LRU cache of decoded images, bounded by their estimated memory footprint.

    Nothing is persisted; the persistent response cache still holds the encoded
    bytes, so entries are cheap to rebuild.
    """

    def __init__(self, budget: int = DEFAULT_BUDGET) -> None:
        self._cache: 'OrderedDict[str, Tuple[Image.Image, int]]' = OrderedDict()
        self._budget = budget
        self._usage = 0
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Image.Image]:
        with self._lock:
            item = self._cache.get(key)
            if item is None:
                return None
            self._cache.move_to_end(key)
            return item[0]

    def put(self, key: str, image: Image.Image) -> None:
        footprint = estimate_footprint(image)
        if footprint > self._budget:
            logger.info('Not caching {}: {} bytes exceeds the image cache budget'.format(key, footprint))
            return

        with self._lock:
            previous = self._cache.pop(key, None)
            if previous is not None:
                self._usage -= previous[1]
            while self._cache and self._usage + footprint > self._budget:
                evicted_key, (_, evicted_size) = self._cache.popitem(last=False)
                self._usage -= evicted_size
                logger.info('Evicted image {} ({} bytes)'.format(evicted_key, evicted_size))
            self._cache[key] = (image, footprint)
            self._usage += footprint

    def invalidate(self, key: str) -> None:
        with self._lock:
            item = self._cache.pop(key, None)
            if item is not None:
                self._usage -= item[1]

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()
            self._usage = 0

    @property
    def budget(self) -> int:
        return self._budget

    @property
    def size(self) -> int:
        with self._lock:
            return len(self._cache)

    @property
    def memory_usage_bytes(self) -> int:
        with self._lock:
            return self._usage
