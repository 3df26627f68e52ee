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

"""Model lifecycle and streaming coordination."""

from .channel import StreamChannel
from .coordinator import ModelLifecycleCoordinator
from .engine import OllamaEngine
from .errors import (
    CoordinatorError, EngineError, SpawnFailure, ListFailure, InstallFailure,
    PreconditionFailure, StreamFailure, InvalidConversation
)
from .installer import InstallationCoordinator, InstallationOperation, InstallSubscription
from .registry import InstallRegistry
from .schemas import (
    ServerState, InstallState, InstallStatus, InstallResult,
    ImageAttachment, Message, Conversation, normalize_model_name
)
from .session import GenerationService, GenerationSession
from .supervisor import ProcessSupervisor

__all__ = [
    'StreamChannel',
    'ModelLifecycleCoordinator',
    'OllamaEngine',
    'CoordinatorError',
    'EngineError',
    'SpawnFailure',
    'ListFailure',
    'InstallFailure',
    'PreconditionFailure',
    'StreamFailure',
    'InvalidConversation',
    'InstallationCoordinator',
    'InstallationOperation',
    'InstallSubscription',
    'InstallRegistry',
    'ServerState',
    'InstallState',
    'InstallStatus',
    'InstallResult',
    'ImageAttachment',
    'Message',
    'Conversation',
    'normalize_model_name',
    'GenerationService',
    'GenerationSession',
    'ProcessSupervisor',
]
