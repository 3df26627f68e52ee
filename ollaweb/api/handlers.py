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

"""Request handlers bridging HTTP and the lifecycle coordinator."""
import json
import logging
from typing import Any, Dict, Optional

from flask import Response, jsonify, stream_with_context

from ..core.coordinator import ModelLifecycleCoordinator
from ..core.errors import InstallFailure, PreconditionFailure, SpawnFailure, StreamFailure
from ..core.schemas import Conversation, ImageAttachment, normalize_model_name

logger = logging.getLogger(__name__)


def parse_chat_form(form, files, default_model: str) -> tuple:
    """Turn the chat page's multipart form into (model, conversation).

    Raises ValueError (including InvalidConversation) on malformed input.
    """
    raw_messages = form.get('messages')
    if not raw_messages:
        raise ValueError("Missing required field: messages")
    try:
        messages = json.loads(raw_messages)
    except json.JSONDecodeError as e:
        raise ValueError(f"messages is not valid JSON: {e}") from e

    model = normalize_model_name(form.get('model') or default_model)

    image = None
    upload = files.get('image')
    if upload is not None and upload.filename:
        image = ImageAttachment(data=upload.read(), media_type=upload.mimetype or 'application/octet-stream')

    return model, Conversation.from_payload(messages, image)


class RequestHandler:
    """Builds streamed responses for install and chat requests."""

    def __init__(self, coordinator: ModelLifecycleCoordinator):
        self.coordinator = coordinator

    def create_install_response(self, model: str) -> Response:
        """Stream install progress, one line per progress line."""
        subscription = self.coordinator.install(model)
        logger.info(f"[{subscription.model}] Streaming installation progress to client")

        def generate_progress():
            try:
                for line in subscription:
                    yield line + '\n'
                result = subscription.result
                if result is not None and not result.success:
                    yield f"Error: Installation failed: {result.reason}\n"
            finally:
                if subscription.result is None:
                    logger.info(f"[{subscription.model}] Install observer disconnected")
                    subscription.close()

        return Response(stream_with_context(generate_progress()),
                        mimetype='text/plain',
                        headers={'X-Model': subscription.model})

    def create_chat_response(self, model: str, conversation: Conversation):
        """Install the model if needed, then stream the reply as plain text."""
        try:
            self.coordinator.ensure_installed(
                model, on_progress=lambda line: logger.info(f"[{model}] {line}")
            )
        except InstallFailure as e:
            return jsonify({'error': f"Model {model} installation failed", 'message': e.reason}), 500

        try:
            session = self.coordinator.generate(model, conversation)
        except SpawnFailure as e:
            logger.error(f"[{model}] Inference engine unavailable: {e}")
            return jsonify({'error': 'Inference engine unavailable', 'message': str(e)}), 503
        except PreconditionFailure as e:
            return jsonify({'error': str(e)}), 409

        chunks = iter(session)
        # Pull the first chunk so a failure before any output gets a status code.
        first_chunk: Optional[str] = None
        try:
            first_chunk = next(chunks)
        except StopIteration:
            pass
        except StreamFailure as e:
            return jsonify({'error': 'Internal Server Error', 'message': str(e)}), 502

        def generate_text():
            try:
                if first_chunk is not None:
                    yield first_chunk
                for chunk in chunks:
                    yield chunk
            except StreamFailure as e:
                logger.error(f"[{session.session_id}] Stream failed after {session.chunks_delivered} chunks: {e}")
                yield f"\nError: {e}"
            finally:
                chunks.close()

        return Response(stream_with_context(generate_text()),
                        mimetype='text/plain',
                        headers={'X-Model': model, 'X-Session-ID': session.session_id})

    def check_model(self, model: str) -> Dict[str, Any]:
        return {'installed': self.coordinator.check_installed(model)}
