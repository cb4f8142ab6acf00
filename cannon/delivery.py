"""
Where callbacks run.

Workers perform I/O and parsing; they never call user callbacks directly.
Instead they post them to a delivery, which decides the thread they run on.
"""

from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
import logging
import queue
from typing import Any, Callable, Optional


logger = logging.getLogger(__name__)


def _invoke(callback: Callable[..., Any], *args) -> None:
    try:
        callback(*args)
    except Exception:
        logger.exception('Callback {!r} raised'.format(callback))


class Delivery(ABC):
    @abstractmethod
    def post(self, callback: Callable[..., Any], *args) -> None:
        """
        Arrange for `callback(*args)` to run. Exceptions raised by the callback are logged.
        """


class InlineDelivery(Delivery):
    """
    Runs callbacks right away, on the worker thread.
    """

    def post(self, callback: Callable[..., Any], *args) -> None:
        _invoke(callback, *args)


class ExecutorDelivery(Delivery):
    """
    Runs callbacks on one dedicated thread, in the order they were posted.
    """

    def __init__(self) -> None:
        self.__executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix='cannon-delivery')

    def post(self, callback: Callable[..., Any], *args) -> None:
        self.__executor.submit(_invoke, callback, *args)


class QueueDelivery(Delivery):
    """
    Holds callbacks until the owning thread runs them with `run_pending()`.

    This is how a caller with its own event loop gets results on its own thread.
    """

    def __init__(self) -> None:
        self.__queue: 'queue.Queue' = queue.Queue()

    def post(self, callback: Callable[..., Any], *args) -> None:
        self.__queue.put((callback, args))

    def run_pending(self, timeout: Optional[float] = None) -> int:
        """
        Run every queued callback.

        @param timeout
          With a timeout, wait up to that many seconds for the first callback
          when none is queued yet.
        @return
          The number of callbacks run.
        """
        count = 0
        if timeout is not None:
            try:
                callback, args = self.__queue.get(timeout=timeout)
            except queue.Empty:
                return 0
            _invoke(callback, *args)
            count += 1

        while True:
            try:
                callback, args = self.__queue.get_nowait()
            except queue.Empty:
                return count
            _invoke(callback, *args)
            count += 1
