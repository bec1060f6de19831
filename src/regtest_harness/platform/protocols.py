# Copyright 2025 iGenius S.p.A
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

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Protocol, runtime_checkable


class ServiceState(str, Enum):
    """Lifecycle states of a provisioned dependency service."""

    STOPPED = "STOPPED"
    STARTING = "STARTING"
    RUNNING = "RUNNING"
    STOPPING = "STOPPING"


@dataclass
class ServiceHandle:
    """Handle for a provisioned dependency service.

    Attributes
    ----------
    name: str
        Name of the managed resource group (e.g. the compose project name).
        Stable across process restarts, so teardown always has a target.
    state: ServiceState
        Current lifecycle state. Only the provisioner and the orchestrator
        move it; readiness probes never touch it.
    meta: dict[str, Any]
        Arbitrary metadata (compose file, launch command, etc.).
    """

    name: str
    state: ServiceState = ServiceState.STOPPED
    meta: dict[str, Any] = field(default_factory=dict)

    @property
    def is_stopped(self) -> bool:
        return self.state is ServiceState.STOPPED


@runtime_checkable
class Provisioner(Protocol):
    """Start/stop a dependency service.

    ``start`` is non-blocking and does not verify health. ``stop`` is
    idempotent and never raises; it returns a warning message when the
    teardown itself failed, ``None`` otherwise.
    """

    def start(self) -> ServiceHandle: ...

    def stop(self, handle: ServiceHandle | None) -> str | None: ...


@runtime_checkable
class SuiteRunner(Protocol):
    """Run the external test suite and report its exit status."""

    def run(
        self,
        commands: Sequence[Sequence[str]],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
    ) -> int: ...
