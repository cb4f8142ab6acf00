from abc import ABC, abstractmethod
from collections import OrderedDict
from contextlib import contextmanager
from dataclasses import dataclass
from email.utils import parsedate_to_datetime
import hashlib
import json
import logging
import os
from pathlib import Path
import tempfile
import threading
import time
from typing import AbstractSet, Dict, Iterator, List, Mapping, Optional, Tuple

from requests.structures import CaseInsensitiveDict

from .errors import CacheError
from .model import CacheEntry, Request, Response
from .util import clamp


logger = logging.getLogger(__name__)

DEFAULT_BUDGET = 300 * 1024 * 1024
"""
300 MiB.
"""


class Cache(ABC):
    """
    An abstraction of a response cache.

    A response cache has a relatively narrow scope: to remember a response such that it can be recalled later for a
    matching request. Deciding whether a remembered response is still fresh enough to use is left to the caller, based
    on the entry's freshness markers.
    """

    @abstractmethod
    def get(self, request: Request) -> Optional[CacheEntry]:
        """
        Retrieve a cached response matching `request`.

        @param request
          The request to look up in the cache.
        @return
          A cached entry for `request`, or `None` on a miss.
        """

    @abstractmethod
    def add(self, request: Request, response: Response, expires: Optional[float] = None) -> Optional[CacheEntry]:
        """
        Add a response to the cache, replacing any prior entry for the same request.

        @param request
          The request for which a response should be cached.
        @param response
          The response to cache.
        @param expires
          Epoch timestamp after which the entry is stale.
        @return
          The cached entry, or `None` if the cache declined to store the response.
        @throws CacheError
          If the underlying storage failed.
        """

    @abstractmethod
    def delete(self, request: Request) -> None:
        """
        Delete a response from the cache.

        @param request
            A request to find in the cache. The corresponding response will be deleted.
        """

    def close(self):
        """
        Close any resources associated with the cache.
        """


class HttpAwareCache(Cache):
    """
    Augments a cache with HTTP-specific knowledge.

    - Only sensible responses are stored (200, 203, 300, 301), and only for cachable methods.
    - Responses marked no-store or no-cache are not stored.
    - Freshness comes from Cache-Control max-age, then Expires, then a default TTL.
    - Entries whose Vary headers do not match the incoming request are not returned.
    """

    def __init__(self, implementation: Cache, cachable_methods: AbstractSet[str] = frozenset({'GET'}),
                 default_ttl: float = 0) -> None:
        self.__impl = implementation
        self.__cachable_methods = frozenset(m.upper() for m in cachable_methods)
        self.__default_ttl = default_ttl

    def get(self, request: Request) -> Optional[CacheEntry]:
        if not self._is_cachable_method(request.method):
            logger.info('Method {} is not cachable'.format(request.method))
            return None

        logger.info('Delegating cache lookup to decorated cache.')
        entry = self.__impl.get(request)
        if entry is None:
            logger.info('Decorated cache did not find a matching cache entry.')
            return None

        if not self._is_cachable_status_code(entry.response.status):
            logger.info('Status code {} is not cachable'.format(entry.response.status))
            return None

        # region Only return the entry if all of its Vary headers match.
        response_headers = CaseInsensitiveDict(entry.response.headers)
        cached_request_headers = CaseInsensitiveDict(entry.request.headers)
        request_headers = CaseInsensitiveDict(request.headers)
        vary_header_keys = [key.strip() for key in response_headers.get('Vary', '').split(',') if key.strip()]
        for key in vary_header_keys:
            if key == '*':
                logger.info('Cache entry is rejected because it varies on everything.')
                return None
            if cached_request_headers.get(key) != request_headers.get(key):
                logger.info('Cache entry is rejected because the value for a Vary header is not equal to the value in the original request. Header: {}. Expected value: {}. Actual value: {}'.format(key, cached_request_headers.get(key), request_headers.get(key)))
                return None
        # endregion

        logger.info('Cache entry passed all HTTP checks. Returning entry from cache.')
        return entry

    def add(self, request: Request, response: Response, expires: Optional[float] = None) -> Optional[CacheEntry]:
        if not self._is_cachable_status_code(response.status):
            logger.info('Refusing to create cache entry. Status code {} is not cachable.'.format(response.status))
            return None
        if not self._is_cachable_method(request.method):
            logger.info('Refusing to create cache entry. Method {} is not cachable.'.format(request.method))
            return None

        headers = CaseInsensitiveDict(response.headers)
        directives = self._cache_control(headers)
        if 'no-store' in directives or 'no-cache' in directives:
            logger.info('Refusing to create cache entry. The response forbids caching.')
            return None

        if expires is None:
            expires = self._expires(headers, directives)

        logger.info('Delegating cache entry creation to decorated cache.')
        return self.__impl.add(request, response, expires)

    def delete(self, request: Request) -> None:
        logger.info('Delegating cache entry deletion to decorated cache.')
        self.__impl.delete(request)

    def close(self):
        self.__impl.close()

    def _is_cachable_status_code(self, status: int) -> bool:
        return status in (200, 203, 300, 301,)

    def _is_cachable_method(self, method: str) -> bool:
        return method.upper() in self.__cachable_methods

    def _cache_control(self, headers: Mapping[str, str]) -> Dict[str, Optional[str]]:
        directives = {}
        for token in headers.get('Cache-Control', '').split(','):
            name, _, value = token.strip().partition('=')
            if name:
                directives[name.lower()] = value.strip('"') or None
        return directives

    def _expires(self, headers: Mapping[str, str], directives: Mapping[str, Optional[str]]) -> float:
        now = time.time()

        max_age = directives.get('max-age')
        if max_age is not None:
            try:
                return now + max(0, int(max_age))
            except ValueError:
                logger.warning('Ignoring malformed max-age: {}'.format(max_age))

        if 'Expires' in headers:
            try:
                expires = parsedate_to_datetime(headers['Expires'])
                if 'Date' not in headers:
                    return expires.timestamp()
                date = parsedate_to_datetime(headers['Date'])
                return now + max(0.0, (expires - date).total_seconds())
            except (TypeError, ValueError):
                logger.warning('Ignoring malformed Expires/Date headers')

        return now + self.__default_ttl


class CorruptEntry(Exception):
    def __init__(self, entry_path: Path):
        super().__init__()
        self.__entry_path = entry_path

    @property
    def entry_path(self) -> Path:
        return self.__entry_path


@dataclass
class _IndexRecord:
    size: int
    entry_path: Path
    body_path: Path


class DiskCache(Cache):
    """
    A byte-budgeted response cache on the file system.

    Each entry is a JSON file under ``entries/`` describing the request and the response, plus the raw body under
    ``bodies/``. The total of all body sizes never exceeds the budget once an insertion completes; the least recently
    used entries are evicted to make room.

    Reads and writes for one key are serialized by a lock for that key. The index lock only guards the size accounting,
    so different keys read and write their files in parallel.
    """

    def __init__(self, directory: Path, budget: int = DEFAULT_BUDGET, cache_directory_levels: int = 2) -> None:
        """
        Initialize the disk cache, indexing whatever a previous process left in `directory`.

        @param directory
          The path to the root directory of the cache.
        @param budget
          The maximum total size, in bytes, of cached bodies.
        @param cache_directory_levels
          The number of subdirectory levels to use in the cache directory. This
          will be clamped to be between 0 and 20, respectively.
        """
        self.__directory = Path(directory)
        self.__entry_directory = self.__directory / 'entries'
        self.__body_directory = self.__directory / 'bodies'
        self.__budget = budget
        self.__cache_directory_levels = clamp(cache_directory_levels, 0, 20)

        self.__index: 'OrderedDict[str, _IndexRecord]' = OrderedDict()
        self.__total_size = 0
        self.__index_lock = threading.Lock()
        self.__key_locks: Dict[str, Tuple[threading.Lock, int]] = {}
        self.__key_locks_guard = threading.Lock()

        self.__entry_directory.mkdir(parents=True, exist_ok=True)
        self.__body_directory.mkdir(parents=True, exist_ok=True)
        self._rebuild_index()

    @property
    def budget(self) -> int:
        return self.__budget

    @property
    def total_size(self) -> int:
        with self.__index_lock:
            return self.__total_size

    def __len__(self) -> int:
        with self.__index_lock:
            return len(self.__index)

    def _hash(self, request: Request) -> str:
        return hashlib.sha256(request.key.encode('utf-8')).hexdigest()

    def _split_path(self, path: str) -> Path:
        subdirectories = (list(path[:self.__cache_directory_levels])
                          + [path[self.__cache_directory_levels:]])
        return Path(*subdirectories)

    @property
    def key_lock_count(self) -> int:
        with self.__key_locks_guard:
            return len(self.__key_locks)

    @contextmanager
    def _key_lock(self, key: str) -> Iterator[None]:
        """
        Hold the lock for `key`. The lock only lives while some thread holds
        or waits on it.
        """
        with self.__key_locks_guard:
            lock, holders = self.__key_locks.get(key, (None, 0))
            if lock is None:
                lock = threading.Lock()
            self.__key_locks[key] = (lock, holders + 1)
        try:
            with lock:
                yield
        finally:
            with self.__key_locks_guard:
                lock, holders = self.__key_locks[key]
                if holders == 1:
                    del self.__key_locks[key]
                else:
                    self.__key_locks[key] = (lock, holders - 1)

    def _rebuild_index(self) -> None:
        logger.info('Indexing existing cache entries in {}'.format(self.__directory))
        found = []
        for entry_path in self.__entry_directory.rglob('*'):
            if not entry_path.is_file() or entry_path.name.startswith('.'):
                continue
            key = ''.join(entry_path.relative_to(self.__entry_directory).parts)
            body_path = self.__body_directory / self._split_path(key)
            try:
                model = self._read_entry_file(entry_path)
                size = body_path.stat().st_size
                mtime = entry_path.stat().st_mtime
            except (CorruptEntry, FileNotFoundError):
                logger.warning('Found a corrupt cache entry while indexing. Deleting {}'.format(entry_path))
                self._unlink(entry_path, body_path)
                continue
            if size != model.get('size', size):
                logger.warning('Body size does not match its entry. Deleting {}'.format(entry_path))
                self._unlink(entry_path, body_path)
                continue
            found.append((mtime, key, _IndexRecord(size, entry_path, body_path)))

        for _, key, record in sorted(found, key=lambda item: item[0]):
            self.__index[key] = record
            self.__total_size += record.size
        logger.info('Indexed {} cache entries, {} bytes'.format(len(self.__index), self.__total_size))

        # An older process may have been configured with a larger budget.
        with self.__index_lock:
            victims = self._evict_until_fits(0)
        self._unlink_victims(victims)

    def _read_entry_file(self, entry_path: Path) -> dict:
        """
        @throws FileNotFoundError
          If there is no entry file.
        @throws CorruptEntry
          If the entry file could not be parsed.
        """
        try:
            with open(entry_path, 'r') as f:
                entry = json.load(f)
            if not isinstance(entry, dict) or 'request' not in entry or 'response' not in entry:
                raise CorruptEntry(entry_path)
            return entry
        except FileNotFoundError as e:
            raise e
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise CorruptEntry(entry_path) from e

    def _unlink(self, *paths: Path) -> None:
        for path in paths:
            try:
                path.unlink()
            except FileNotFoundError:
                pass
            except OSError:
                logger.exception('Unexpected error occurred while deleting {}'.format(path))

    def _evict_until_fits(self, size: int) -> List[Tuple[str, _IndexRecord]]:
        # Caller holds the index lock and unlinks the returned victims after releasing it.
        victims = []
        while self.__index and self.__total_size + size > self.__budget:
            key, record = self.__index.popitem(last=False)
            self.__total_size -= record.size
            logger.info('Evicting {} ({} bytes) to make room'.format(key, record.size))
            victims.append((key, record))
        return victims

    def _unlink_victims(self, victims: List[Tuple[str, _IndexRecord]]) -> None:
        for key, record in victims:
            with self.__index_lock:
                if key in self.__index:
                    # Written again since it was evicted.
                    continue
            self._unlink(record.entry_path, record.body_path)

    def _forget(self, key: str) -> Optional[_IndexRecord]:
        with self.__index_lock:
            record = self.__index.pop(key, None)
            if record is not None:
                self.__total_size -= record.size
            return record

    def get(self, request: Request) -> Optional[CacheEntry]:
        key = self._hash(request)
        entry_path = self.__entry_directory / self._split_path(key)
        body_path = self.__body_directory / self._split_path(key)

        with self._key_lock(key):
            try:
                logger.info('Looking at the file system for a cache entry matching the request.')
                entry = self._read_entry_file(entry_path)
                with open(body_path, 'rb') as f:
                    body = f.read()
                result = CacheEntry(
                    request=Request(method=entry['request']['method'],
                                    uri=entry['request']['uri'],
                                    headers=entry['request']['headers']),
                    response=Response(status=entry['response']['status'],
                                      reason=entry['response']['reason'],
                                      headers=entry['response']['headers'],
                                      body=body),
                    expires=entry.get('expires'),
                    etag=entry.get('etag'),
                    size=len(body))
            except FileNotFoundError:
                logger.info('No matching cache entry found.')
                if entry_path.exists():
                    logger.warning('The entry exists but its body is gone. Deleting the entry.')
                    self._forget(key)
                    self._unlink(entry_path)
                return None
            except (CorruptEntry, KeyError, TypeError):
                logger.warning('Found a corrupt cache entry. Deleting the entry file.')
                self._forget(key)
                self._unlink(entry_path, body_path)
                return None
            except OSError as e:
                raise CacheError('Could not read cache entry for {}'.format(request.key)) from e

            if result.request.key != request.key:
                # Only possible with a hash collision.
                logger.warning('Cache entry belongs to a different request: {}'.format(result.request.key))
                return None

            with self.__index_lock:
                if key in self.__index:
                    self.__index.move_to_end(key)
            try:
                os.utime(entry_path)
            except OSError:
                logger.warning('Could not refresh the access time of {}'.format(entry_path))

            logger.info('Loaded entry file. Returning the cache entry')
            return result

    def add(self, request: Request, response: Response, expires: Optional[float] = None) -> Optional[CacheEntry]:
        size = len(response.body)
        key = self._hash(request)
        entry_path = self.__entry_directory / self._split_path(key)
        body_path = self.__body_directory / self._split_path(key)

        if size > self.__budget:
            logger.warning('Declining to cache {}: {} bytes exceeds the whole budget of {} bytes'.format(
                request.key, size, self.__budget))
            with self._key_lock(key):
                # The prior entry is outdated by this response.
                self._forget(key)
                self._unlink(entry_path, body_path)
            return None

        etag = CaseInsensitiveDict(response.headers).get('ETag')

        serialized = {
            'request': {
                'method': request.method,
                'uri': request.uri,
                'headers': dict(request.headers),
            },
            'response': {
                'status': response.status,
                'reason': response.reason,
                'headers': dict(response.headers),
            },
            'expires': expires,
            'etag': etag,
            'size': size,
        }

        with self._key_lock(key):
            logger.info('Reserving {} bytes for {}'.format(size, request.key))
            with self.__index_lock:
                previous = self.__index.pop(key, None)
                if previous is not None:
                    self.__total_size -= previous.size
                victims = self._evict_until_fits(size)
                record = _IndexRecord(size, entry_path, body_path)
                self.__index[key] = record
                self.__total_size += size
            self._unlink_victims(victims)

            try:
                logger.info('Writing body and entry files for {}'.format(request.key))
                self._write_atomically(body_path, response.body)
                self._write_atomically(entry_path, json.dumps(serialized).encode('utf-8'))
            except OSError as e:
                self._forget(key)
                self._unlink(entry_path, body_path)
                raise CacheError('Could not write cache entry for {}'.format(request.key)) from e

            with self.__index_lock:
                evicted = self.__index.get(key) is not record
            if evicted:
                # Another insertion evicted this entry while its files were being written.
                logger.info('Entry for {} was evicted before it was written'.format(request.key))
                self._unlink(entry_path, body_path)
                return None

        return CacheEntry(request=request, response=response, expires=expires, etag=etag, size=size)

    def _write_atomically(self, path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_name = tempfile.mkstemp(dir=path.parent, prefix='.tmp-')
        try:
            with os.fdopen(fd, 'wb') as f:
                f.write(data)
            os.replace(temp_name, path)
        except OSError:
            self._unlink(Path(temp_name))
            raise

    def delete(self, request: Request) -> None:
        key = self._hash(request)
        entry_path = self.__entry_directory / self._split_path(key)
        body_path = self.__body_directory / self._split_path(key)

        with self._key_lock(key):
            if self._forget(key) is None and not entry_path.exists():
                logger.info('No matching cache entry found. Nothing to delete.')
                return
            logger.info('Deleting the entry file and the body file for {}'.format(request.key))
            self._unlink(entry_path, body_path)
