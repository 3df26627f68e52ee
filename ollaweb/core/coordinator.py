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

"""Single entry point used by the request handlers."""
import logging
from typing import Any, Callable, Dict, Iterable, Optional, Union

from .errors import InstallFailure
from .installer import InstallationCoordinator, InstallSubscription
from .registry import InstallRegistry
from .schemas import Conversation, InstallResult, InstallStatus, Message, ServerState, normalize_model_name
from .session import GenerationService, GenerationSession
from .supervisor import ProcessSupervisor

logger = logging.getLogger(__name__)


class ModelLifecycleCoordinator:
    """Owns the supervisor, registry, installer and generation service.

    Built once at application start and passed to every request path.
    """

    def __init__(self, engine, ready_timeout: float = 30.0, chat_buffer: int = 32):
        self.engine = engine
        self.supervisor = ProcessSupervisor(engine, ready_timeout=ready_timeout)
        self.registry = InstallRegistry(engine)
        self.installer = InstallationCoordinator(engine, self.registry)
        self.generator = GenerationService(engine, self.registry, buffer_size=chat_buffer)

    def ensure_running(self) -> ServerState:
        return self.supervisor.ensure_running()

    def check_installed(self, model: str) -> bool:
        return self.registry.is_installed(model)

    def install(self, model: str) -> InstallSubscription:
        return self.installer.install(model)

    def ensure_installed(self, model: str,
                         on_progress: Optional[Callable[[str], None]] = None) -> InstallResult:
        """Install ``model`` unless the engine already has it.

        Raises ``InstallFailure`` when the installation does not succeed.
        """
        name = normalize_model_name(model)
        if self.check_installed(name):
            return InstallResult(name, True)

        logger.info(f"[{name}] Not installed, installing before generation")
        with self.install(name) as subscription:
            for line in subscription:
                if on_progress:
                    on_progress(line)
        result = subscription.result
        if result is None or not result.success:
            raise InstallFailure(name, result.reason if result else None)
        return result

    def generate(self, model: str,
                 conversation: Union[Conversation, Iterable[Message]]) -> GenerationSession:
        if not self.supervisor.wait_until_ready():
            logger.warning(f"[{model}] Engine readiness not confirmed, attempting generation anyway")
        return self.generator.generate(model, conversation)

    def install_status(self, model: str) -> InstallStatus:
        return self.registry.get_status(model)

    def status(self) -> Dict[str, Any]:
        return {
            'server_state': self.supervisor.state.value,
            'engine_alive': self.supervisor.is_alive(),
            'installing': self.installer.live_models(),
            'models': {name: s.to_dict() for name, s in self.registry.all_statuses().items()},
        }
