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

from collections.abc import Iterator, Mapping, Sequence
import contextlib
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
import signal
import threading
import time
from typing import Callable

import requests

from regtest_harness.backends.compose import ComposeProvisioner
from regtest_harness.backends.suite_runner import SubprocessSuiteRunner
from regtest_harness.config.harness import HarnessConfig
from regtest_harness.config.settings import get_settings
from regtest_harness.exceptions import (
    HarnessInterrupted,
    ProvisionError,
    ReadinessTimeout,
    TeardownWarning,
    TestRunnerFailure,
)
from regtest_harness.helpers.logger import setup_logger
from regtest_harness.platform.protocols import (
    Provisioner,
    ServiceHandle,
    SuiteRunner,
)
from regtest_harness.platform.rpc_probe import PollOutcome, ReadinessProbe, wait_until_ready

logger = setup_logger(__name__)

EXIT_FAILURE = 1
EXIT_PROVISION_FAILURE = 3
EXIT_READINESS_TIMEOUT = 4


class Stage(str, Enum):
    IDLE = "IDLE"
    PROVISIONING = "PROVISIONING"
    AWAITING_READY = "AWAITING_READY"
    TESTING = "TESTING"
    TEARDOWN = "TEARDOWN"
    DONE = "DONE"


class Outcome(str, Enum):
    PASSED = "PASSED"
    PROVISION_FAILURE = "PROVISION_FAILURE"
    READINESS_TIMEOUT = "READINESS_TIMEOUT"
    TEST_RUNNER_FAILURE = "TEST_RUNNER_FAILURE"
    ABORTED = "ABORTED"


@dataclass
class RunReport:
    """Result of one orchestrated run.

    ``stage`` is the last stage that was active before teardown, i.e. the
    stage that failed when ``outcome`` is not PASSED.
    """

    outcome: Outcome
    exit_code: int
    stage: Stage
    attempts: int = 0
    detail: str | None = None
    teardown_warning: str | None = None

    @property
    def ok(self) -> bool:
        return self.outcome is Outcome.PASSED


class Orchestrator:
    """Sequence provision → wait until ready → run tests → teardown.

    Teardown is registered as soon as provisioning is attempted and fires on
    every exit path: success, readiness timeout, test failure, provisioning
    failure, exceptions and termination signals. Its own failure is logged
    as a warning and never changes the reported outcome.

    Testability: pass fake ``sleep`` and ``http_post`` so the readiness loop
    runs without a wall clock or a network.
    """

    def __init__(
        self,
        provisioner: Provisioner,
        runner: SuiteRunner,
        probe: ReadinessProbe,
        *,
        commands: Sequence[Sequence[str]] = (),
        max_attempts: int = 10,
        interval_s: float = 3.0,
        initial_delay_s: float = 0.0,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        distinct_exit_codes: bool = False,
        sleep: Callable[[float], None] = time.sleep,
        http_post: Callable = requests.post,
        on_attempt: Callable[[int, str], None] | None = None,
    ):
        self.provisioner = provisioner
        self.runner = runner
        self.probe = probe
        self.commands = [list(c) for c in commands]
        self.max_attempts = max_attempts
        self.interval_s = interval_s
        self.initial_delay_s = initial_delay_s
        self.cwd = cwd
        self.env = dict(env or {})
        self.distinct_exit_codes = distinct_exit_codes
        self._sleep = sleep
        self._http_post = http_post
        self._on_attempt = on_attempt

        self.stage = Stage.IDLE
        self._active_stage = Stage.IDLE
        self.teardown_warning: str | None = None

    @classmethod
    def from_config(cls, cfg: HarnessConfig, **kwargs) -> "Orchestrator":
        settings = get_settings()
        provisioner = ComposeProvisioner(
            cfg.project,
            cfg.compose_file,
            compose_bin=settings.compose_bin,
            cwd=cfg.working_dir,
        )
        return cls(
            provisioner,
            SubprocessSuiteRunner(),
            cfg.to_probe(),
            commands=cfg.commands,
            max_attempts=cfg.max_attempts,
            interval_s=cfg.interval_s,
            initial_delay_s=cfg.initial_delay_s,
            cwd=cfg.working_dir,
            env=cfg.env,
            distinct_exit_codes=cfg.distinct_exit_codes,
            **kwargs,
        )

    # --- Stages -----------------------------------------------------------------
    def _transition(self, stage: Stage) -> None:
        logger.debug(f"{self.stage.value} → {stage.value}")
        self.stage = stage
        if stage not in (Stage.TEARDOWN, Stage.DONE):
            self._active_stage = stage

    def _teardown(self, handle: ServiceHandle | None) -> None:
        self._transition(Stage.TEARDOWN)
        try:
            self.teardown_warning = self.provisioner.stop(handle)
        except Exception as e:
            name = handle.name if handle is not None else "dependency"
            warning = TeardownWarning(name, f"stop raised {type(e).__name__}: {e}")
            self.teardown_warning = str(warning)
            logger.warning(f"[yellow]{self.teardown_warning}")

    @contextlib.contextmanager
    def provisioned(self) -> Iterator[ServiceHandle]:
        """Start the dependency and guarantee its teardown on exit.

        ``stop`` runs even when ``start`` itself raised, with no handle, so
        partially created resources are released too.
        """
        self._transition(Stage.PROVISIONING)
        handle: ServiceHandle | None = None
        try:
            handle = self.provisioner.start()
            yield handle
        finally:
            self._teardown(handle)

    def wait_until_ready(
        self,
        probe: ReadinessProbe | None = None,
        max_attempts: int | None = None,
        interval_s: float | None = None,
    ) -> PollOutcome:
        return wait_until_ready(
            probe or self.probe,
            self.max_attempts if max_attempts is None else max_attempts,
            self.interval_s if interval_s is None else interval_s,
            sleep=self._sleep,
            http_post=self._http_post,
            on_attempt=self._on_attempt,
        )

    def _await_ready(self) -> PollOutcome:
        self._transition(Stage.AWAITING_READY)
        if self.initial_delay_s > 0:
            logger.info(f"Waiting {self.initial_delay_s}s before probing {self.probe.url}…")
            self._sleep(self.initial_delay_s)
        return self.wait_until_ready()

    def _failure_code(self, outcome: Outcome) -> int:
        if not self.distinct_exit_codes:
            return EXIT_FAILURE
        if outcome is Outcome.PROVISION_FAILURE:
            return EXIT_PROVISION_FAILURE
        if outcome is Outcome.READINESS_TIMEOUT:
            return EXIT_READINESS_TIMEOUT
        return EXIT_FAILURE

    def _report(self, outcome: Outcome, exit_code: int, **kwargs) -> RunReport:
        return RunReport(outcome=outcome, exit_code=exit_code, stage=self._active_stage, **kwargs)

    def _suite_env(self, handle: ServiceHandle) -> dict[str, str]:
        return {
            **self.env,
            "REGTEST_HARNESS_RPC_URL": self.probe.url,
            "REGTEST_HARNESS_PROJECT": handle.name,
        }

    # --- Entry points -----------------------------------------------------------
    def run(self) -> RunReport:
        """Run the whole sequence and return its report. Never raises for
        provisioning, readiness or test failures."""
        self.teardown_warning = None
        with _sigterm_as_exception():
            try:
                with self.provisioned() as handle:
                    poll = self._await_ready()
                    if not poll.ready:
                        report = self._report(
                            Outcome.READINESS_TIMEOUT,
                            self._failure_code(Outcome.READINESS_TIMEOUT),
                            attempts=poll.attempts,
                            detail=str(ReadinessTimeout(self.probe.url, poll.attempts)),
                        )
                    else:
                        self._transition(Stage.TESTING)
                        code = self.runner.run(
                            self.commands, cwd=self.cwd, env=self._suite_env(handle)
                        )
                        outcome = Outcome.PASSED if code == 0 else Outcome.TEST_RUNNER_FAILURE
                        report = self._report(
                            outcome,
                            code,
                            attempts=poll.attempts,
                            detail=None if code == 0 else str(TestRunnerFailure(code)),
                        )
            except ProvisionError as e:
                report = self._report(
                    Outcome.PROVISION_FAILURE,
                    self._failure_code(Outcome.PROVISION_FAILURE),
                    detail=str(e),
                )
            except KeyboardInterrupt:
                report = self._report(Outcome.ABORTED, 128 + signal.SIGINT, detail="Interrupted")
            except HarnessInterrupted as e:
                report = self._report(Outcome.ABORTED, 128 + e.signum, detail=str(e))

        self._transition(Stage.DONE)
        report.teardown_warning = self.teardown_warning
        _log_report(report)
        return report

    def run_or_raise(self) -> RunReport:
        """Like `run`, but raise the matching `HarnessError` on failure."""
        report = self.run()
        if report.outcome is Outcome.PROVISION_FAILURE:
            raise ProvisionError(report.detail or "Provisioning failed")
        if report.outcome is Outcome.READINESS_TIMEOUT:
            raise ReadinessTimeout(self.probe.url, report.attempts)
        if report.outcome is Outcome.TEST_RUNNER_FAILURE:
            raise TestRunnerFailure(report.exit_code)
        if report.outcome is Outcome.ABORTED:
            raise HarnessInterrupted(report.exit_code - 128)
        return report

    def up(self) -> RunReport:
        """Start the dependency and wait until it is ready, leaving it running.

        If it never becomes ready, or the wait is interrupted, it is torn down.
        """
        self.teardown_warning = None
        with _sigterm_as_exception():
            self._transition(Stage.PROVISIONING)
            try:
                handle = self.provisioner.start()
            except ProvisionError as e:
                self._teardown(None)
                report = self._report(
                    Outcome.PROVISION_FAILURE,
                    self._failure_code(Outcome.PROVISION_FAILURE),
                    detail=str(e),
                )
            else:
                report = self._await_or_teardown(handle)
        self._transition(Stage.DONE)
        report.teardown_warning = self.teardown_warning
        return report

    def _await_or_teardown(self, handle: ServiceHandle) -> RunReport:
        try:
            poll = self._await_ready()
        except KeyboardInterrupt:
            self._teardown(handle)
            return self._report(Outcome.ABORTED, 128 + signal.SIGINT, detail="Interrupted")
        except HarnessInterrupted as e:
            self._teardown(handle)
            return self._report(Outcome.ABORTED, 128 + e.signum, detail=str(e))
        except BaseException:
            self._teardown(handle)
            raise
        if poll.ready:
            return self._report(Outcome.PASSED, 0, attempts=poll.attempts)
        self._teardown(handle)
        return self._report(
            Outcome.READINESS_TIMEOUT,
            self._failure_code(Outcome.READINESS_TIMEOUT),
            attempts=poll.attempts,
            detail=str(ReadinessTimeout(self.probe.url, poll.attempts)),
        )

    def down(self) -> str | None:
        """Tear down the dependency by name, whether or not it is running."""
        self._teardown(None)
        self._transition(Stage.DONE)
        return self.teardown_warning


@contextlib.contextmanager
def _sigterm_as_exception() -> Iterator[None]:
    """Turn SIGTERM into `HarnessInterrupted` so it unwinds through teardown."""
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    def _handle_sigterm(signum, frame):
        raise HarnessInterrupted(signum)

    previous = signal.signal(signal.SIGTERM, _handle_sigterm)
    try:
        yield
    finally:
        signal.signal(signal.SIGTERM, previous)


def _log_report(report: RunReport) -> None:
    if report.ok:
        logger.info(f"[bold green]Tests passed[/] (readiness attempts: {report.attempts})")
    else:
        logger.error(
            f"[red]{report.outcome.value}[/] during {report.stage.value}: "
            f"{report.detail or 'no detail'} (exit {report.exit_code})"
        )
    if report.teardown_warning:
        logger.warning(f"[yellow]Teardown warning: {report.teardown_warning}")
