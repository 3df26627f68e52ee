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

"""Main entry point for the Ollama chat server."""
import logging
import sys
from typing import Optional

from flask import Flask

from .config import ServerConfig, parse_arguments
from .utils.logging import setup_logging
from .core.coordinator import ModelLifecycleCoordinator
from .core.engine import OllamaEngine
from .api.routes import create_routes

logger = logging.getLogger(__name__)


def create_app(config: ServerConfig, engine: Optional[OllamaEngine] = None) -> tuple[Flask, ModelLifecycleCoordinator]:
    """Create and configure the Flask application."""

    setup_logging(config.log_dir, config.debug)

    app = Flask(__name__)
    app.config['DEBUG'] = config.debug

    logger.info("Initializing core components...")

    if engine is None:
        engine = OllamaEngine(config.ollama_bin, config.ollama_url, list_timeout=config.list_timeout)
        logger.info(f"Engine: {config.ollama_bin} ({config.ollama_url})")

    coordinator = ModelLifecycleCoordinator(engine, ready_timeout=config.ready_timeout,
                                            chat_buffer=config.chat_buffer)
    logger.info("Lifecycle coordinator initialized")

    api_blueprint = create_routes(coordinator, config)
    app.register_blueprint(api_blueprint)
    logger.info("API routes registered")

    return app, coordinator


def main(argv=None):
    """Main entry point."""
    try:
        config = parse_arguments(argv)
        logger.info(f"Starting chat server on {config.host}:{config.port}")

        app, coordinator = create_app(config)

        logger.info("=" * 60)
        logger.info("Ollaweb Starting")
        logger.info("=" * 60)
        logger.info(f"🚀 Server starting on http://{config.host}:{config.port}")
        logger.info(f"🤖 Default model: {config.default_model}")
        logger.info(f"❤️  Health check at http://{config.host}:{config.port}/health")
        logger.info("=" * 60)

        app.run(
            host=config.host,
            port=config.port,
            debug=config.debug,
            threaded=True,
            use_reloader=False  # The reloader would spawn a second supervisor
        )

    except KeyboardInterrupt:
        logger.info("Server stopped by user")
    except Exception as e:
        logger.critical(f"Failed to start server: {e}", exc_info=True)
        sys.exit(1)


if __name__ == '__main__':
    main()
