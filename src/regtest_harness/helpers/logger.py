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

import logging
import sys

from rich.console import Console
from rich.logging import RichHandler


def _rich_handler(level: int, console: Console, tracebacks: bool) -> RichHandler:
    return RichHandler(
        level=level,
        console=console,
        rich_tracebacks=tracebacks,
        markup=True,
        show_time=True,
        show_level=True,
        show_path=False,
    )


def setup_logger(
    name: str = "regtest_harness",
    level=logging.INFO,
    console: Console | None = None,
    to_stderr: bool = False,
) -> logging.Logger:
    """Return a rich-backed logger, configuring it on first use.

    INFO and below go to stdout, WARNING and above to stderr. When stdout is
    not a TTY (CI logs, pipes) everything is routed to stderr so that the
    test runner's own stdout stays clean.
    """
    machine_mode = not sys.stdout.isatty()
    to_stderr = to_stderr or machine_mode

    logger = logging.getLogger(name)
    logger.setLevel(level)
    logger.propagate = False  # Avoid duplicate logs

    if logger.handlers:
        return logger

    stdout_console = console or Console()
    stderr_console = Console(stderr=True)

    # Handlers pass everything through; the logger level filters.
    if to_stderr:
        logger.addHandler(_rich_handler(logging.DEBUG, stderr_console, tracebacks=True))
        return logger

    stdout_handler = _rich_handler(logging.DEBUG, stdout_console, tracebacks=False)
    stdout_handler.addFilter(lambda record: record.levelno <= logging.INFO)

    logger.addHandler(stdout_handler)
    logger.addHandler(_rich_handler(logging.WARNING, stderr_console, tracebacks=True))

    return logger


def set_level(level: str | int) -> None:
    """Apply ``level`` to every logger created under the package namespace."""
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
    for name, obj in logging.Logger.manager.loggerDict.items():
        if isinstance(obj, logging.Logger) and name.startswith("regtest_harness"):
            obj.setLevel(level)
