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

"""Exceptions raised by the model lifecycle coordinator."""
from typing import Optional


class CoordinatorError(Exception):
    """Base class for coordinator failures."""


class EngineError(CoordinatorError):
    """A call into the inference engine failed."""


class SpawnFailure(CoordinatorError):
    """The inference engine process could not be launched."""


class ListFailure(EngineError):
    """The installed-model listing could not be obtained."""


class InstallFailure(CoordinatorError):
    """A model installation finished unsuccessfully."""

    def __init__(self, model: str, reason: Optional[str]):
        self.model = model
        self.reason = reason or 'unknown error'
        super().__init__(f"Model {model} installation failed: {self.reason}")


class PreconditionFailure(CoordinatorError):
    """Generation was requested for a model that is not installed."""

    def __init__(self, model: str):
        self.model = model
        super().__init__(f"Model {model} is not installed")


class StreamFailure(CoordinatorError):
    """The engine failed after a generation stream had started."""


class InvalidConversation(CoordinatorError, ValueError):
    """The conversation violates the message/attachment rules."""
