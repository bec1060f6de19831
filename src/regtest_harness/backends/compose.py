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

from pathlib import Path
import subprocess
from typing import Callable

from regtest_harness.exceptions import ProvisionError, TeardownWarning
from regtest_harness.helpers.logger import setup_logger
from regtest_harness.platform.protocols import ServiceHandle, ServiceState

logger = setup_logger(__name__)


class ComposeProvisioner:
    """Provision the dependency as a named ``docker compose`` project.

    ``start`` runs ``compose up -d`` and returns immediately; it does not
    wait for the containers to be healthy. ``stop`` runs ``compose down -v``
    so named volumes are removed and the next run starts from a clean chain.
    Both verbs target the project name, so ``stop`` works across process
    restarts and after a partial ``start``.
    """

    def __init__(
        self,
        project: str,
        compose_file: Path | None = None,
        *,
        compose_bin: str = "docker",
        cwd: Path | None = None,
        run: Callable[..., subprocess.CompletedProcess] = subprocess.run,
    ):
        self.project = project
        self.compose_file = compose_file
        self.compose_bin = compose_bin
        self.cwd = cwd
        self._run = run

    def _base_cmd(self) -> list[str]:
        cmd = [self.compose_bin, "compose", "-p", self.project]
        if self.compose_file is not None:
            cmd.extend(["-f", str(self.compose_file)])
        return cmd

    def _invoke(self, args: list[str]) -> subprocess.CompletedProcess:
        cmd = self._base_cmd() + args
        logger.debug(f"Running: {' '.join(cmd)}")
        return self._run(
            cmd,
            cwd=self.cwd,
            capture_output=True,
            text=True,
            check=True,
        )

    def start(self) -> ServiceHandle:
        handle = ServiceHandle(
            name=self.project,
            state=ServiceState.STARTING,
            meta={"compose_file": str(self.compose_file) if self.compose_file else None},
        )
        try:
            self._invoke(["up", "-d"])
        except subprocess.CalledProcessError as e:
            detail = (e.stderr or "").strip() or f"exit status {e.returncode}"
            raise ProvisionError(f"'compose up' failed for project {self.project}: {detail}") from e
        except OSError as e:
            # missing, non-executable or directory compose_bin
            raise ProvisionError(f"Cannot launch '{self.compose_bin}': {e}") from e

        # Running means "launched", not "healthy"; readiness is probed separately.
        handle.state = ServiceState.RUNNING
        logger.info(f"Started compose project [bold]{self.project}[/bold]")
        return handle

    def stop(self, handle: ServiceHandle | None = None) -> str | None:
        """Tear down the project and its volumes.

        Returns a warning message if the teardown failed, ``None`` otherwise.
        The handle is always left STOPPED.
        """
        if handle is not None:
            if handle.is_stopped and handle.meta.get("torn_down"):
                logger.debug(f"Project {handle.name} already torn down, skipping.")
                return None
            handle.state = ServiceState.STOPPING

        warning = None
        try:
            self._invoke(["down", "-v", "--remove-orphans"])
            logger.info(f"Stopped compose project [bold]{self.project}[/bold]")
        except subprocess.CalledProcessError as e:
            detail = (e.stderr or "").strip() or f"exit status {e.returncode}"
            warning = str(TeardownWarning(self.project, f"'compose down' failed: {detail}"))
        except OSError as e:
            warning = str(TeardownWarning(self.project, f"Cannot launch '{self.compose_bin}': {e}"))

        if warning:
            logger.warning(f"[yellow]{warning}")

        if handle is not None:
            handle.state = ServiceState.STOPPED
            handle.meta["torn_down"] = warning is None
        return warning
