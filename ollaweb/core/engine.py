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

"""Boundary to the local Ollama inference engine (CLI and HTTP API)."""
import json
import logging
import re
import subprocess
from collections import deque
from typing import Any, Dict, Generator, List

import requests

from .errors import EngineError, ListFailure, SpawnFailure

logger = logging.getLogger(__name__)

# Cursor movement and erase sequences emitted by `ollama pull` progress bars
ANSI_ESCAPE = re.compile(r'\x1b\[[0-9;?]*[A-Za-z]')


def clean_progress_line(line: str) -> str:
    return ANSI_ESCAPE.sub('', line).strip()


def parse_model_listing(stdout: str) -> List[str]:
    """Extract model names from ``ollama list`` output (header row skipped)."""
    names = []
    for line in stdout.splitlines()[1:]:
        columns = line.split()
        if columns:
            names.append(columns[0])
    return names


class PullProcess:
    """A running ``ollama pull`` with stderr folded into stdout."""

    def __init__(self, model: str, process: subprocess.Popen, tail_size: int = 20):
        self.model = model
        self.process = process
        self.tail: deque = deque(maxlen=tail_size)

    def lines(self) -> Generator[str, None, None]:
        """Yield non-empty progress lines in the order the process emits them."""
        for raw in self.process.stdout:
            line = clean_progress_line(raw)
            if not line:
                continue
            self.tail.append(line)
            yield line

    def wait(self) -> int:
        return self.process.wait()

    def kill(self) -> None:
        if self.process.poll() is None:
            self.process.kill()

    @property
    def failure_reason(self) -> str:
        detail = ' | '.join(list(self.tail)[-3:])
        reason = f"ollama pull exited with code {self.process.returncode}"
        return f"{reason}: {detail}" if detail else reason


class ChatStream:
    """Iterator over the text chunks of a streamed ``/api/chat`` response."""

    def __init__(self, response: requests.Response):
        self.response = response

    def __iter__(self) -> Generator[str, None, None]:
        try:
            for raw in self.response.iter_lines():
                if not raw:
                    continue
                data = json.loads(raw)
                if data.get('error'):
                    raise EngineError(f"Engine error: {data['error']}")
                content = (data.get('message') or {}).get('content')
                if content:
                    yield content
                if data.get('done'):
                    return
        except (requests.RequestException, ValueError) as e:
            raise EngineError(f"Chat stream read error: {e}") from e

    def close(self) -> None:
        self.response.close()


class OllamaEngine:
    """Thin wrapper around the ``ollama`` binary and its local HTTP API."""

    def __init__(self, ollama_bin: str = 'ollama', base_url: str = 'http://127.0.0.1:11434',
                 list_timeout: float = 10.0, connect_timeout: float = 2.0):
        self.ollama_bin = ollama_bin
        self.base_url = base_url.rstrip('/')
        self.list_timeout = list_timeout
        self.connect_timeout = connect_timeout

    def spawn_server(self) -> subprocess.Popen:
        """Launch ``ollama serve``; does not wait for it to accept requests."""
        cmd = [self.ollama_bin, 'serve']
        logger.info(f"Starting inference engine: {' '.join(cmd)}")
        try:
            return subprocess.Popen(
                cmd, stdout=subprocess.PIPE, stderr=subprocess.STDOUT,
                text=True, bufsize=1, encoding='utf-8', errors='replace'
            )
        except OSError as e:
            raise SpawnFailure(f"Failed to start {self.ollama_bin} serve: {e}") from e

    def ping(self) -> bool:
        """True when the engine's HTTP API answers."""
        try:
            response = requests.get(f"{self.base_url}/api/tags", timeout=self.connect_timeout)
            return response.status_code == 200
        except requests.RequestException:
            return False

    def list_installed(self) -> List[str]:
        cmd = [self.ollama_bin, 'list']
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=self.list_timeout)
        except (OSError, subprocess.TimeoutExpired) as e:
            raise ListFailure(f"`{' '.join(cmd)}` failed: {e}") from e
        if result.returncode != 0:
            raise ListFailure(f"`{' '.join(cmd)}` exited with code {result.returncode}: {result.stderr.strip()[:200]}")
        return parse_model_listing(result.stdout)

    def pull(self, model: str) -> PullProcess:
        cmd = [self.ollama_bin, 'pull', model]
        logger.info(f"[{model}] Executing: {' '.join(cmd)}")
        try:
            process = subprocess.Popen(
                cmd, stdout=subprocess.PIPE, stderr=subprocess.STDOUT,
                text=True, bufsize=1, encoding='utf-8', errors='replace'
            )
        except OSError as e:
            raise EngineError(f"Failed to start {' '.join(cmd)}: {e}") from e
        return PullProcess(model, process)

    def chat(self, model: str, messages: List[Dict[str, Any]]) -> ChatStream:
        """Open a streamed ``/api/chat`` request and return its chunk iterator."""
        payload = {'model': model, 'messages': messages, 'stream': True}
        try:
            response = requests.post(f"{self.base_url}/api/chat", json=payload, stream=True,
                                     timeout=(self.connect_timeout, None))
        except requests.RequestException as e:
            raise EngineError(f"Chat request failed: {e}") from e
        if response.status_code != 200:
            try:
                detail = response.json().get('error', response.text)
            except ValueError:
                detail = response.text
            response.close()
            raise EngineError(f"Chat request returned HTTP {response.status_code}: {detail}")
        return ChatStream(response)
