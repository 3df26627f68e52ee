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

"""Flask routes for the chat server."""
import logging

from flask import Blueprint, request, jsonify

from .handlers import RequestHandler, parse_chat_form
from ..core.errors import SpawnFailure
from ..core.schemas import normalize_model_name

logger = logging.getLogger(__name__)


def create_routes(coordinator, config) -> Blueprint:
    """Create and configure all API routes."""
    api_bp = Blueprint('api', __name__)
    handler = RequestHandler(coordinator)

    def _ensure_engine():
        """Start the engine if needed; returns an error response on spawn failure."""
        try:
            coordinator.ensure_running()
            return None
        except SpawnFailure as e:
            logger.error(f"Inference engine unavailable: {e}")
            return jsonify({'error': 'Inference engine unavailable', 'message': str(e)}), 503

    # ============================================================================
    # Chat & Installation
    # ============================================================================

    @api_bp.route('/api/chat', methods=['POST'])
    def chat():
        """Install-only requests (JSON) or chat generation (multipart form)."""
        error_response = _ensure_engine()
        if error_response:
            return error_response

        if request.is_json:
            data = request.get_json(silent=True)
            if not isinstance(data, dict) or not data.get('installOnly') or not data.get('model'):
                return jsonify({'error': 'Invalid installation request'}), 400
            try:
                return handler.create_install_response(data['model'])
            except ValueError as e:
                return jsonify({'error': 'Invalid installation request', 'message': str(e)}), 400
            except Exception as e:
                logger.exception("Error starting installation")
                return jsonify({'error': 'Internal Server Error', 'message': str(e)}), 500

        try:
            model, conversation = parse_chat_form(request.form, request.files, config.default_model)
        except ValueError as e:
            logger.warning(f"Rejected chat request: {e}")
            return jsonify({'error': 'Invalid chat request', 'message': str(e)}), 400

        try:
            return handler.create_chat_response(model, conversation)
        except Exception as e:
            logger.exception("API Error in chat")
            return jsonify({'error': 'Internal Server Error', 'message': str(e)}), 500

    @api_bp.route('/api/check-model', methods=['GET'])
    def check_model():
        """Report whether a model is installed."""
        error_response = _ensure_engine()
        if error_response:
            return error_response

        model = request.args.get('model')
        if not model:
            return jsonify({'error': 'Model parameter required'}), 400
        try:
            return jsonify(handler.check_model(model)), 200
        except ValueError as e:
            return jsonify({'error': str(e)}), 400

    @api_bp.route('/api/install-status', methods=['GET'])
    def install_status():
        """Cached install state of a model, without querying the engine."""
        model = request.args.get('model')
        if not model:
            return jsonify({'error': 'Model parameter required'}), 400
        try:
            status = coordinator.install_status(normalize_model_name(model))
        except ValueError as e:
            return jsonify({'error': str(e)}), 400
        return jsonify(status.to_dict()), 200

    # ============================================================================
    # Health
    # ============================================================================

    @api_bp.route('/health', methods=['GET'])
    def health():
        """Server state, engine liveness and in-flight installs."""
        status = coordinator.status()
        status['status'] = 'healthy' if status['engine_alive'] else 'degraded'
        return jsonify(status), 200

    return api_bp
