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

"""Chat generation streamed from the engine to a single consumer."""
import logging
import threading
import uuid
from typing import Generator, Iterable, Optional, Union

from .channel import StreamChannel
from .errors import PreconditionFailure, StreamFailure
from .registry import InstallRegistry
from .schemas import Conversation, InstallState, Message, normalize_model_name

logger = logging.getLogger(__name__)


class GenerationSession:
    """One chat completion, owned by the request that created it.

    A producer thread copies engine chunks into a bounded channel; iterating
    the session yields them in emission order. Stopping iteration early
    (``close()`` on the generator, or a client disconnect) cancels the
    channel and closes the engine response so the producer exits promptly.
    """

    def __init__(self, engine, model: str, conversation: Conversation,
                 buffer_size: int = 32, poll_interval: float = 0.1):
        self.session_id = str(uuid.uuid4())[:8]
        self.engine = engine
        self.model = model
        self.conversation = conversation
        self.channel = StreamChannel(buffer_size, poll_interval)
        self.chunks_delivered = 0
        self.released = threading.Event()
        self._stream = None
        self._stream_lock = threading.Lock()
        self._producer: Optional[threading.Thread] = None

    def __iter__(self) -> Generator[str, None, None]:
        self._start()
        try:
            for chunk in self.channel:
                self.chunks_delivered += 1
                yield chunk
        finally:
            self.cancel()

    def cancel(self) -> None:
        """Release the engine call; safe to call more than once."""
        if not self.channel.closed and not self.channel.cancelled:
            logger.info(f"[{self.session_id}] Consumer went away after {self.chunks_delivered} chunks, releasing engine stream")
        self.channel.cancel()
        with self._stream_lock:
            stream = self._stream
        if stream is not None:
            stream.close()

    def _start(self) -> None:
        if self._producer is not None:
            raise RuntimeError("A generation session can only be consumed once")
        self._producer = threading.Thread(target=self._produce, name=f"generate-{self.session_id}", daemon=True)
        self._producer.start()

    def _produce(self) -> None:
        stream = None
        produced = 0
        try:
            stream = self.engine.chat(self.model, self.conversation.to_engine())
            with self._stream_lock:
                self._stream = stream
            if self.channel.cancelled:
                return

            for chunk in stream:
                if not self.channel.put(chunk):
                    return
                produced += 1
            self.channel.close()
            logger.info(f"[{self.session_id}] Generation completed. Chunks: {produced}")
        except Exception as e:
            if self.channel.cancelled:
                logger.debug(f"[{self.session_id}] Engine stream ended after cancellation: {e}")
            else:
                logger.error(f"[{self.session_id}] Generation failed after {produced} chunks: {e}")
                self.channel.close(StreamFailure(f"Generation failed: {e}"))
        finally:
            if stream is not None:
                stream.close()
            self.released.set()


class GenerationService:
    """Creates generation sessions for installed models."""

    def __init__(self, engine, registry: InstallRegistry, buffer_size: int = 32):
        self.engine = engine
        self.registry = registry
        self.buffer_size = buffer_size

    def generate(self, model: str,
                 conversation: Union[Conversation, Iterable[Message]]) -> GenerationSession:
        """Return a session streaming the reply to ``conversation``.

        Raises ``PreconditionFailure`` before any output when ``model`` is not
        installed; installing is the caller's job.
        """
        name = normalize_model_name(model)
        if not isinstance(conversation, Conversation):
            conversation = Conversation(conversation)

        if self.registry.get_state(name) is not InstallState.INSTALLED and not self.registry.is_installed(name):
            raise PreconditionFailure(name)

        session = GenerationSession(self.engine, name, conversation, self.buffer_size)
        logger.info(f"[{session.session_id}] Generation session for {name}: "
                    f"{len(conversation)} messages, image: {conversation.image is not None}")
        return session
