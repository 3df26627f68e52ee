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

"""Installed-model queries and the per-model install state cache."""
import logging
import threading
import time
from typing import Dict, Optional

from .schemas import InstallState, InstallStatus, normalize_model_name

logger = logging.getLogger(__name__)


class InstallRegistry:
    """Answers "is this model installed" and caches install state per model."""

    def __init__(self, engine):
        self.engine = engine
        self._statuses: Dict[str, InstallStatus] = {}
        # Bumped by every install transition; a check that spans one is stale.
        self._transitions: Dict[str, int] = {}
        self._lock = threading.Lock()

    def is_installed(self, model: str) -> bool:
        """Check the engine's listing for an exact match of ``model``.

        Listing failures count as "not installed"; installing an already
        installed model is a cheap no-op for the engine.
        """
        name = normalize_model_name(model)
        started = self._mark_checking(name)
        try:
            installed = name in self.engine.list_installed()
        except Exception as e:
            logger.warning(f"[{name}] Could not list installed models, assuming not installed: {e}")
            installed = False

        self._record_check(name, installed, started)
        logger.info(f"[{name}] Installed: {installed}")
        return installed

    def get_status(self, model: str) -> InstallStatus:
        name = normalize_model_name(model)
        with self._lock:
            status = self._statuses.get(name)
            if status is None:
                status = self._statuses[name] = InstallStatus(model=name)
            return InstallStatus(name, status.state, status.reason, status.updated_at)

    def get_state(self, model: str) -> InstallState:
        return self.get_status(model).state

    def set_state(self, model: str, state: InstallState, reason: Optional[str] = None) -> None:
        name = normalize_model_name(model)
        with self._lock:
            status = self._statuses.setdefault(name, InstallStatus(model=name))
            status.state = state
            status.reason = reason if state is InstallState.FAILED else None
            status.updated_at = time.time()
            self._transitions[name] = self._transitions.get(name, 0) + 1
        logger.debug(f"[{name}] Install state -> {state.value}")

    def all_statuses(self) -> Dict[str, InstallStatus]:
        with self._lock:
            return {name: InstallStatus(name, s.state, s.reason, s.updated_at)
                    for name, s in self._statuses.items()}

    def _mark_checking(self, name: str) -> int:
        with self._lock:
            status = self._statuses.setdefault(name, InstallStatus(model=name))
            if status.state in (InstallState.UNKNOWN, InstallState.NOT_INSTALLED):
                status.state = InstallState.CHECKING
                status.updated_at = time.time()
            return self._transitions.get(name, 0)

    def _record_check(self, name: str, installed: bool, started: int) -> None:
        # A live install owns the state until it completes, and its outcome
        # outranks any listing taken before it finished.
        with self._lock:
            status = self._statuses[name]
            if status.state is InstallState.INSTALLING:
                return
            if self._transitions.get(name, 0) != started:
                logger.debug(f"[{name}] Dropping check result taken before the last install transition")
                return
            if installed:
                status.state = InstallState.INSTALLED
                status.reason = None
            elif status.state in (InstallState.CHECKING, InstallState.INSTALLED):
                status.state = InstallState.NOT_INSTALLED
            status.updated_at = time.time()
