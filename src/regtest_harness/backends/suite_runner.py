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
import os
from pathlib import Path
import shlex
import subprocess
from typing import Callable

from regtest_harness.helpers.logger import setup_logger

logger = setup_logger(__name__)

# Shell convention for "command not found".
EXIT_COMMAND_NOT_FOUND = 127


def normalize_returncode(returncode: int) -> int:
    """Map a `subprocess` returncode to a process exit status.

    Negative returncodes represent termination by signal and become
    ``128 + signum``, as a shell would report them.
    """
    if returncode < 0:
        return 128 - returncode
    return returncode


class SubprocessSuiteRunner:
    """Run the test commands one after the other as subordinate processes.

    Output is inherited from the harness so the suite's own reporting shows
    up unchanged. The first non-zero exit status stops the sequence and is
    returned; later commands are not run.
    """

    def __init__(self, *, run: Callable[..., subprocess.CompletedProcess] = subprocess.run):
        self._run = run

    def run(
        self,
        commands: Sequence[Sequence[str]],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
    ) -> int:
        if not commands:
            logger.warning("[yellow]No test commands configured, nothing to run.")
            return 0

        full_env = {**os.environ, **(env or {})}
        for i, command in enumerate(commands, start=1):
            pretty = shlex.join(command)
            logger.info(f"Running test step {i}/{len(commands)}: [bold]{pretty}")
            try:
                proc = self._run(list(command), cwd=cwd, env=full_env, check=False)
            except FileNotFoundError:
                logger.error(f"Command not found: {command[0]}")
                return EXIT_COMMAND_NOT_FOUND
            except PermissionError:
                logger.error(f"Command is not executable: {command[0]}")
                return EXIT_COMMAND_NOT_FOUND - 1

            status = normalize_returncode(proc.returncode)
            if status != 0:
                logger.error(f"Test step '{pretty}' exited with status {status}")
                return status

        return 0
