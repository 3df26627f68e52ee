"""Shared fixtures: a scripted stand-in for the Ollama engine."""
import os
import sys
import threading
import time
from collections import Counter
from pathlib import Path
from typing import Dict, List, Optional

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from ollaweb.core.errors import EngineError, ListFailure, SpawnFailure


class PullScript:
    """Scripted behaviour of one `ollama pull` invocation.

    With ``hold_after`` set, the pull publishes that many lines, sets
    ``reached`` and waits for ``release`` before continuing.
    """

    def __init__(self, lines=None, exit_code=0, hold_after=None):
        self.lines = list(lines if lines is not None else ['pulling manifest', 'pulling 11f2', 'verifying sha256 digest', 'success'])
        self.exit_code = exit_code
        self.hold_after = hold_after
        self.reached = threading.Event()
        self.release = threading.Event()


class FakePull:
    def __init__(self, engine: 'FakeEngine', model: str, script: PullScript):
        self.engine = engine
        self.model = model
        self.script = script
        self.killed = False

    def lines(self):
        for index, line in enumerate(self.script.lines):
            if index == self.script.hold_after:
                self.script.reached.set()
                self.script.release.wait(5)
            yield line
        if self.script.hold_after is not None and self.script.hold_after >= len(self.script.lines):
            self.script.reached.set()
            self.script.release.wait(5)

    def wait(self) -> int:
        if self.script.exit_code == 0:
            self.engine.installed.add(self.model)
        return self.script.exit_code

    def kill(self) -> None:
        self.killed = True

    @property
    def failure_reason(self) -> str:
        return f"ollama pull exited with code {self.script.exit_code}: {self.script.lines[-1] if self.script.lines else ''}"


class FakeChatStream:
    def __init__(self, chunks: List[str], fail_after: Optional[int] = None, delay: float = 0.0):
        self.chunks = chunks
        self.fail_after = fail_after
        self.delay = delay
        self.produced = 0
        self.closed = threading.Event()

    def __iter__(self):
        for index, chunk in enumerate(self.chunks):
            if self.delay:
                time.sleep(self.delay)
            if self.closed.is_set():
                raise EngineError("connection closed")
            if self.fail_after is not None and index == self.fail_after:
                raise EngineError("engine crashed")
            self.produced += 1
            yield chunk

    def close(self) -> None:
        self.closed.set()


class FakeProcess:
    def __init__(self):
        self.pid = os.getpid()
        self.stdout = None


class FakeEngine:
    """In-memory engine with call counters."""

    def __init__(self):
        self.ready = False
        self.installed = set()
        self.spawn_calls = 0
        self.spawn_failures = 0
        self.spawn_delay = 0.0
        self.list_error: Optional[Exception] = None
        self.pull_scripts: Dict[str, PullScript] = {}
        self.pull_error: Optional[Exception] = None
        self.pull_calls: Counter = Counter()
        self.chat_chunks = ['Hello', ', ', 'world', '!']
        self.chat_fail_after: Optional[int] = None
        self.chat_delay = 0.0
        self.chat_calls = []
        self.streams: List[FakeChatStream] = []
        self._lock = threading.Lock()

    def ping(self) -> bool:
        return self.ready

    def spawn_server(self):
        with self._lock:
            self.spawn_calls += 1
            fail = self.spawn_failures > 0
            if fail:
                self.spawn_failures -= 1
        if self.spawn_delay:
            time.sleep(self.spawn_delay)
        if fail:
            raise SpawnFailure("ollama: executable file not found")
        return FakeProcess()

    def list_installed(self):
        if self.list_error is not None:
            raise self.list_error
        return sorted(self.installed)

    def pull(self, model: str):
        with self._lock:
            self.pull_calls[model] += 1
        if self.pull_error is not None:
            raise self.pull_error
        script = self.pull_scripts.get(model) or PullScript()
        return FakePull(self, model, script)

    def chat(self, model, messages):
        self.chat_calls.append((model, messages))
        stream = FakeChatStream(list(self.chat_chunks), self.chat_fail_after, self.chat_delay)
        self.streams.append(stream)
        return stream


@pytest.fixture
def engine():
    return FakeEngine()


@pytest.fixture
def list_failure():
    return ListFailure("could not connect to ollama app, is it running?")
