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

"""Core data structures for the model lifecycle coordinator."""
import base64
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Any, Iterable, List, Optional, Tuple

from .errors import InvalidConversation

DEFAULT_TAG = 'latest'
MESSAGE_ROLES = ('system', 'user', 'assistant')


def normalize_model_name(name: str) -> str:
    """Return the canonical form of a model name.

    Names without an explicit tag get ``:latest`` appended, so ``demo-model``
    and ``demo-model:latest`` address the same model. A colon that belongs to
    a registry host (``host:5000/ns/model``) is not a tag separator.
    """
    if not isinstance(name, str) or not name.strip():
        raise ValueError("Model name must be a non-empty string")
    name = name.strip()
    last_segment = name.rsplit('/', 1)[-1]
    if ':' in last_segment:
        return name
    return f"{name}:{DEFAULT_TAG}"


class ServerState(Enum):
    """Lifecycle of the supervised inference engine process."""
    NOT_STARTED = 'not_started'
    STARTING = 'starting'
    RUNNING = 'running'


class InstallState(Enum):
    """Cached install state of a single model."""
    UNKNOWN = 'unknown'
    CHECKING = 'checking'
    NOT_INSTALLED = 'not_installed'
    INSTALLING = 'installing'
    INSTALLED = 'installed'
    FAILED = 'failed'


@dataclass
class InstallStatus:
    """Install state tracking for one model"""
    model: str
    state: InstallState = InstallState.UNKNOWN
    reason: Optional[str] = None  # only set when state is FAILED
    updated_at: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'model': self.model,
            'state': self.state.value,
            'reason': self.reason,
            'updated_at': self.updated_at,
        }


@dataclass(frozen=True)
class InstallResult:
    """Terminal outcome of an installation operation."""
    model: str
    success: bool
    reason: Optional[str] = None


@dataclass(frozen=True)
class ImageAttachment:
    """Binary image uploaded alongside the latest user message."""
    data: bytes
    media_type: str

    def to_base64(self) -> str:
        return base64.b64encode(self.data).decode('ascii')


@dataclass(frozen=True)
class Message:
    """A single conversation turn."""
    role: str
    content: str
    image: Optional[ImageAttachment] = None

    def __post_init__(self):
        if self.role not in MESSAGE_ROLES:
            raise InvalidConversation(f"Unsupported message role: {self.role!r}")
        if not isinstance(self.content, str):
            raise InvalidConversation("Message content must be text")

    def to_engine(self, include_image: bool = False) -> Dict[str, Any]:
        """Convert to the engine's chat message shape."""
        payload: Dict[str, Any] = {'role': self.role, 'content': self.content}
        if include_image and self.image is not None:
            payload['images'] = [self.image.to_base64()]
        return payload


class Conversation:
    """Ordered, validated sequence of messages.

    At most one image may be present and only on the final message, which
    must then be a user message. Misplaced images are rejected rather than
    dropped.
    """

    def __init__(self, messages: Iterable[Message]):
        self.messages: Tuple[Message, ...] = tuple(messages)
        if not self.messages:
            raise InvalidConversation("Conversation must contain at least one message")

        last_index = len(self.messages) - 1
        for index, message in enumerate(self.messages):
            if message.image is None:
                continue
            if index != last_index:
                raise InvalidConversation(
                    f"Image attachment on message {index} is not allowed; only the final message may carry one"
                )
            if message.role != 'user':
                raise InvalidConversation(
                    f"Image attachment on a final '{message.role}' message is not allowed"
                )

    @classmethod
    def from_payload(cls, raw_messages: List[Dict[str, Any]],
                     image: Optional[ImageAttachment] = None) -> 'Conversation':
        """Build a conversation from the chat client's JSON messages.

        Client-side ``image`` keys are browser preview URLs, not attachments,
        and are ignored. ``image`` is the uploaded file and goes on the final
        message.
        """
        if not isinstance(raw_messages, list) or not raw_messages:
            raise InvalidConversation("messages must be a non-empty list")

        messages = []
        for raw in raw_messages:
            if not isinstance(raw, dict):
                raise InvalidConversation("Each message must be an object")
            messages.append(Message(role=raw.get('role'), content=raw.get('content') or ''))

        if image is not None:
            last = messages[-1]
            messages[-1] = Message(role=last.role, content=last.content, image=image)
        return cls(messages)

    @property
    def image(self) -> Optional[ImageAttachment]:
        return self.messages[-1].image

    def to_engine(self) -> List[Dict[str, Any]]:
        last_index = len(self.messages) - 1
        return [m.to_engine(include_image=(i == last_index)) for i, m in enumerate(self.messages)]

    def __len__(self) -> int:
        return len(self.messages)

    def __iter__(self):
        return iter(self.messages)
