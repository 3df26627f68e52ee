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

"""Deduplicated model installation with progress fan-out."""
import logging
import queue
import threading
import time
from typing import Dict, Generator, List, Optional, Set

from .channel import StreamChannel
from .registry import InstallRegistry
from .schemas import InstallResult, InstallState, normalize_model_name

logger = logging.getLogger(__name__)


class InstallSubscription:
    """One observer attached to an installation operation.

    Iterating yields every progress line of the operation, starting with the
    backlog produced before this observer joined. Once iteration ends,
    ``result`` holds the terminal outcome shared by all observers.
    """

    def __init__(self, operation: 'InstallationOperation', channel: StreamChannel):
        self.operation = operation
        self.channel = channel

    @property
    def model(self) -> str:
        return self.operation.model

    @property
    def result(self) -> Optional[InstallResult]:
        return self.operation.result

    def __iter__(self) -> Generator[str, None, None]:
        return iter(self.channel)

    def wait(self, timeout: Optional[float] = None) -> InstallResult:
        """Drain remaining progress and return the terminal result."""
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            try:
                self.channel.get(timeout=remaining)
            except StopIteration:
                return self.result
            except queue.Empty:
                raise TimeoutError(f"Installation of {self.model} still running after {timeout}s")

    def close(self) -> None:
        """Detach; the installation continues for everyone else."""
        self.operation.detach(self)

    def __enter__(self) -> 'InstallSubscription':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self.result is None:
            self.close()


class InstallationOperation:
    """A single in-flight install of one model, shared by its observers."""

    def __init__(self, model: str):
        self.model = model
        self.cancel_event = threading.Event()
        self.log: List[str] = []
        self.observers: Set[InstallSubscription] = set()
        self.result: Optional[InstallResult] = None
        self.started_at = time.time()
        self._lock = threading.Lock()

    def attach(self) -> InstallSubscription:
        with self._lock:
            channel = StreamChannel()
            for line in self.log:
                channel.put(line)
            subscription = InstallSubscription(self, channel)
            if self.result is not None:
                channel.close()
            else:
                self.observers.add(subscription)
            return subscription

    def detach(self, subscription: InstallSubscription) -> None:
        with self._lock:
            self.observers.discard(subscription)
        subscription.channel.cancel()

    def publish(self, line: str) -> None:
        # Observer buffers are unbounded, so delivery never blocks the worker.
        with self._lock:
            self.log.append(line)
            for subscription in self.observers:
                subscription.channel.put(line)

    def finish(self, result: InstallResult) -> None:
        with self._lock:
            self.result = result
            observers = list(self.observers)
            self.observers.clear()
            for subscription in observers:
                subscription.channel.close()


class InstallationCoordinator:
    """Runs at most one install per model and fans its progress out.

    Concurrent ``install`` calls for the same model join the live operation.
    Different models are independent: the table lock is held only for
    lookups, never while a pull is running.
    """

    def __init__(self, engine, registry: InstallRegistry):
        self.engine = engine
        self.registry = registry
        self._operations: Dict[str, InstallationOperation] = {}
        self._lock = threading.Lock()

    def install(self, model: str) -> InstallSubscription:
        name = normalize_model_name(model)
        with self._lock:
            operation = self._operations.get(name)
            if operation is not None:
                logger.info(f"[{name}] Joining in-flight installation ({len(operation.log)} progress lines so far)")
                return operation.attach()

            operation = InstallationOperation(name)
            self._operations[name] = operation
            self.registry.set_state(name, InstallState.INSTALLING)
            subscription = operation.attach()

        logger.info(f"[{name}] Starting installation")
        worker = threading.Thread(target=self._run, args=(operation,), name=f"install-{name}", daemon=True)
        try:
            worker.start()
        except RuntimeError as e:
            logger.exception(f"[{name}] Could not start installation worker")
            self._complete(operation, InstallResult(name, False, f"Could not start installation: {e}"))
        return subscription

    def cancel(self, model: str) -> bool:
        """Request cancellation of a live install. Returns False if none is live."""
        name = normalize_model_name(model)
        with self._lock:
            operation = self._operations.get(name)
        if operation is None:
            return False
        logger.warning(f"[{name}] Cancellation requested")
        operation.cancel_event.set()
        return True

    def live_models(self) -> List[str]:
        with self._lock:
            return sorted(self._operations)

    def _run(self, operation: InstallationOperation) -> None:
        name = operation.model
        result = InstallResult(name, False, 'installation aborted')
        pull = None
        try:
            pull = self.engine.pull(name)
            for line in pull.lines():
                logger.debug(f"[{name}] {line}")
                operation.publish(line)
                if operation.cancel_event.is_set():
                    pull.kill()
                    break

            exit_code = pull.wait()
            if operation.cancel_event.is_set():
                result = InstallResult(name, False, 'installation cancelled')
            elif exit_code == 0:
                result = InstallResult(name, True)
            else:
                result = InstallResult(name, False, pull.failure_reason)
        except Exception as e:
            logger.exception(f"[{name}] Installation error")
            if pull is not None:
                pull.kill()
            result = InstallResult(name, False, str(e))
        finally:
            self._complete(operation, result)

    def _complete(self, operation: InstallationOperation, result: InstallResult) -> None:
        name = operation.model
        with self._lock:
            if result.success:
                self.registry.set_state(name, InstallState.INSTALLED)
            else:
                self.registry.set_state(name, InstallState.FAILED, result.reason)
            if self._operations.get(name) is operation:
                del self._operations[name]
        operation.finish(result)

        duration = time.time() - operation.started_at
        if result.success:
            logger.info(f"[{name}] Installation completed in {duration:.1f}s")
        else:
            logger.error(f"[{name}] Installation failed after {duration:.1f}s: {result.reason}")
