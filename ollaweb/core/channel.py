# Copyright 2025 Ollaweb Contributors
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Producer/consumer channel shared by the install and generation streams."""
import logging
import queue
import threading
from typing import Any, Generator, Optional

logger = logging.getLogger(__name__)


class _EndOfStream:
    """Terminal marker carrying an optional error."""
    __slots__ = ('error',)

    def __init__(self, error: Optional[BaseException] = None):
        self.error = error


class StreamChannel:
    """Thread-safe channel between one producer and one consumer.

    The producer calls ``put`` for every item and ``close`` exactly once,
    optionally with an error. The consumer iterates until the stream closes;
    a close with an error re-raises that error in the consumer after all
    earlier items were delivered. ``cancel`` is the consumer's way of saying
    it has gone away: blocked and future ``put`` calls return ``False`` so the
    producer can release its resources.

    ``maxsize=0`` gives an unbounded buffer, which never blocks the producer.
    """

    def __init__(self, maxsize: int = 0, poll_interval: float = 0.1):
        self._queue: queue.Queue = queue.Queue(maxsize)
        self._cancelled = threading.Event()
        self._closed = False
        self._close_lock = threading.Lock()
        self._end: Optional[_EndOfStream] = None
        self.poll_interval = poll_interval

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def closed(self) -> bool:
        return self._closed

    def _drain(self) -> None:
        try:
            while True:
                self._queue.get_nowait()
        except queue.Empty:
            pass

    def _offer(self, item: Any) -> bool:
        while not self._cancelled.is_set():
            try:
                self._queue.put(item, timeout=self.poll_interval)
            except queue.Full:
                continue
            # cancel() may have freed the slot this put landed in
            if self._cancelled.is_set():
                self._drain()
                return False
            return True
        return False

    def put(self, item: Any) -> bool:
        """Deliver an item, waiting for buffer space. Returns False once cancelled."""
        if self._closed:
            raise RuntimeError("put() on a closed channel")
        return self._offer(item)

    def close(self, error: Optional[BaseException] = None) -> bool:
        """End the stream. Later calls are ignored."""
        with self._close_lock:
            if self._closed:
                return False
            self._closed = True
        return self._offer(_EndOfStream(error))

    def cancel(self) -> None:
        """Consumer-side abort; unblocks the producer and drops buffered items."""
        self._cancelled.set()
        self._drain()

    def get(self, timeout: Optional[float] = None) -> Any:
        """Return the next item.

        Raises ``StopIteration`` at a clean end, the producer's error at a
        failed end, and ``queue.Empty`` when ``timeout`` elapses first.
        """
        if self._end is None:
            item = self._queue.get(timeout=timeout)
            if not isinstance(item, _EndOfStream):
                return item
            self._end = item
        if self._end.error is not None:
            raise self._end.error
        raise StopIteration

    def __iter__(self) -> Generator[Any, None, None]:
        while True:
            try:
                item = self.get()
            except StopIteration:
                return
            yield item
