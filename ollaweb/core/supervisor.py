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

"""Lifecycle of the single local inference engine process."""
import logging
import subprocess
import threading
import time
from typing import Optional

import psutil

from .errors import SpawnFailure
from .schemas import ServerState

logger = logging.getLogger(__name__)

ERROR_KEYWORDS = ('error', 'fatal', 'panic', 'failed')
WARN_KEYWORDS = ('warn', 'cannot', 'not found')


class ProcessSupervisor:
    """Starts the inference engine at most once and tracks its readiness.

    ``ensure_running`` never waits for the engine to accept requests; callers
    that need the HTTP API use ``wait_until_ready``, which polls with a
    bounded backoff. A failed spawn resets the state so the next call retries.
    """

    def __init__(self, engine, ready_timeout: float = 30.0,
                 initial_backoff: float = 0.25, max_backoff: float = 2.0):
        self.engine = engine
        self.ready_timeout = ready_timeout
        self.initial_backoff = initial_backoff
        self.max_backoff = max_backoff
        self.process: Optional[subprocess.Popen] = None
        self.spawn_count = 0
        self._state = ServerState.NOT_STARTED
        self._lock = threading.Lock()

    @property
    def state(self) -> ServerState:
        return self._state

    def ensure_running(self) -> ServerState:
        """Start the engine if nobody has yet. Safe to call from any thread."""
        with self._lock:
            if self._state is not ServerState.NOT_STARTED:
                return self._state
            self._state = ServerState.STARTING

        try:
            if self.engine.ping():
                logger.info("Inference engine already reachable, adopting it instead of spawning")
                self._set_state(ServerState.RUNNING)
                return self._state

            process = self.engine.spawn_server()
        except SpawnFailure as e:
            logger.error(f"Inference engine failed to start: {e}. Next request will retry.")
            self._set_state(ServerState.NOT_STARTED)
            raise
        except Exception as e:
            logger.exception("Unexpected error while starting inference engine")
            self._set_state(ServerState.NOT_STARTED)
            raise SpawnFailure(str(e)) from e

        self.process = process
        self.spawn_count += 1
        logger.info(f"Inference engine spawned (PID: {getattr(process, 'pid', 'n/a')})")
        if getattr(process, 'stdout', None) is not None:
            threading.Thread(target=self._forward_output, name='engine-output', daemon=True).start()
        return self._state

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """Block until the engine answers, at most ``timeout`` seconds.

        Returns False on timeout instead of raising; the first dependent call
        will then surface the real error.
        """
        if self._state is ServerState.RUNNING:
            return True
        if self._state is ServerState.NOT_STARTED:
            self.ensure_running()

        timeout = self.ready_timeout if timeout is None else timeout
        deadline = time.monotonic() + timeout
        delay = self.initial_backoff
        while True:
            if self.engine.ping():
                if self._state is ServerState.STARTING:
                    self._set_state(ServerState.RUNNING)
                    logger.info("Inference engine is ready")
                return True
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                logger.warning(f"Inference engine not ready after {timeout:.1f}s")
                return False
            time.sleep(min(delay, remaining))
            delay = min(delay * 2, self.max_backoff)

    def is_alive(self) -> bool:
        """Whether the engine process is still running."""
        if self.process is None:
            return self._state is ServerState.RUNNING
        try:
            proc = psutil.Process(self.process.pid)
            return proc.is_running() and proc.status() != psutil.STATUS_ZOMBIE
        except psutil.Error:
            return False

    def _set_state(self, state: ServerState) -> None:
        with self._lock:
            self._state = state

    def _forward_output(self) -> None:
        """Relay engine output to the log."""
        for line in self.process.stdout:
            line = line.strip()
            if not line:
                continue
            line_lower = line.lower()
            if any(kw in line_lower for kw in ERROR_KEYWORDS):
                logger.error(f"ollama: {line}")
            elif any(kw in line_lower for kw in WARN_KEYWORDS):
                logger.warning(f"ollama: {line}")
            else:
                logger.debug(f"ollama: {line}")
        exit_code = self.process.poll()
        logger.warning(f"Inference engine output closed (exit code: {exit_code})")
