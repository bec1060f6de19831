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

from importlib.metadata import PackageNotFoundError, version
from typing import TYPE_CHECKING

try:
    __version__ = version("regtest_harness")
except PackageNotFoundError:  # during dev
    __version__ = "0.0.0"

__all__ = ["HarnessConfig", "Orchestrator", "ReadinessProbe", "wait_until_ready"]


def __getattr__(name: str):
    if name == "Orchestrator":
        from .core.orchestrator import Orchestrator

        return Orchestrator
    if name == "HarnessConfig":
        from .config.harness import HarnessConfig

        return HarnessConfig
    if name == "ReadinessProbe":
        from .platform.rpc_probe import ReadinessProbe

        return ReadinessProbe
    if name == "wait_until_ready":
        from .platform.rpc_probe import wait_until_ready

        return wait_until_ready
    raise AttributeError(name)


if TYPE_CHECKING:
    from .config.harness import HarnessConfig
    from .core.orchestrator import Orchestrator
    from .platform.rpc_probe import ReadinessProbe, wait_until_ready
