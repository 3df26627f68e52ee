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

"""Configuration management for the chat server."""
import argparse
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional


@dataclass
class ServerConfig:
    """Server configuration parameters."""
    host: str = '0.0.0.0'
    port: int = 3000
    log_dir: Path = Path('./logs')
    debug: bool = False
    ollama_bin: str = 'ollama'
    ollama_url: str = 'http://127.0.0.1:11434'
    default_model: str = 'llama3.2-vision'
    ready_timeout: float = 30.0
    list_timeout: float = 10.0
    chat_buffer: int = 32


def parse_arguments(argv: Optional[List[str]] = None) -> ServerConfig:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description='Run a chat front end for a local Ollama engine')
    parser.add_argument('--host', type=str, default='0.0.0.0',
                        help='Host to run the server on (default: 0.0.0.0)')
    parser.add_argument('--port', type=int, default=3000,
                        help='Port to run the server on (default: 3000)')
    parser.add_argument('--log-dir', type=str, default='./logs',
                        help='Path to the logs directory (default: ./logs)')
    parser.add_argument('--debug', action='store_true',
                        help='Enable debug logging')
    parser.add_argument('--ollama-bin', type=str, default='ollama',
                        help='Path to the ollama executable (default: ollama)')
    parser.add_argument('--ollama-url', type=str, default='http://127.0.0.1:11434',
                        help='Base URL of the Ollama HTTP API (default: http://127.0.0.1:11434)')
    parser.add_argument('--default-model', type=str, default='llama3.2-vision',
                        help='Model used when a chat request names none (default: llama3.2-vision)')
    parser.add_argument('--ready-timeout', type=float, default=30.0,
                        help='Seconds to wait for the engine to answer before generating (default: 30)')
    parser.add_argument('--list-timeout', type=float, default=10.0,
                        help='Seconds allowed for `ollama list` (default: 10)')
    parser.add_argument('--chat-buffer', type=int, default=32,
                        help='Chunks buffered per generation stream (default: 32)')

    args = parser.parse_args(argv)

    if args.chat_buffer < 1:
        parser.error('--chat-buffer must be at least 1')

    return ServerConfig(
        host=args.host,
        port=args.port,
        log_dir=Path(args.log_dir),
        debug=args.debug,
        ollama_bin=args.ollama_bin,
        ollama_url=args.ollama_url,
        default_model=args.default_model,
        ready_timeout=args.ready_timeout,
        list_timeout=args.list_timeout,
        chat_buffer=args.chat_buffer
    )
