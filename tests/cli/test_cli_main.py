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

from types import SimpleNamespace

import pytest
from typer.testing import CliRunner

from regtest_harness.cli.main import app
from regtest_harness.core.orchestrator import Outcome, RunReport, Stage
from regtest_harness.platform.rpc_probe import PollOutcome, ReadinessResult

CLI_MODPATH = "regtest_harness.cli.main"

runner = CliRunner()


class _FakeOrchestrator:
    instances = []

    def __init__(self, cfg, report=None, poll=None, warning=None):
        self.cfg = cfg
        self.report = report or RunReport(Outcome.PASSED, 0, Stage.TESTING, attempts=1)
        self.poll = poll or PollOutcome(ReadinessResult.READY, 1)
        self.warning = warning
        self.calls = []

    def run(self):
        self.calls.append("run")
        return self.report

    def up(self):
        self.calls.append("up")
        return self.report

    def down(self):
        self.calls.append("down")
        return self.warning

    def wait_until_ready(self):
        self.calls.append("wait_until_ready")
        return self.poll


@pytest.fixture
def config_file(tmp_path):
    p = tmp_path / "harness.yaml"
    p.write_text("project: btc\nmax_attempts: 5\ncommands:\n  - npm run test\n")
    return p


@pytest.fixture
def fake_orch(monkeypatch):
    """Patch Orchestrator.from_config; tests tweak `state` before invoking."""
    state = SimpleNamespace(kwargs={}, last=None)

    def _from_config(cfg, **kwargs):
        state.last = _FakeOrchestrator(cfg, **state.kwargs)
        return state.last

    monkeypatch.setattr(f"{CLI_MODPATH}.Orchestrator.from_config", _from_config)
    return state


def test_cli_version(monkeypatch):
    monkeypatch.setattr(f"{CLI_MODPATH}.get_version", lambda: "1.2.3")

    result = runner.invoke(app, ["version"])

    assert result.exit_code == 0
    assert "regtest-harness CLI Version: 1.2.3" in result.stdout


def test_cli_version_short(monkeypatch):
    monkeypatch.setattr(f"{CLI_MODPATH}.get_version", lambda: "1.2.3")
    result = runner.invoke(app, ["version", "--short"])
    assert result.exit_code == 0
    assert result.stdout.strip() == "1.2.3"


def test_run_success_exits_zero(fake_orch, config_file):
    result = runner.invoke(app, ["run", "-c", str(config_file)])

    assert result.exit_code == 0
    assert fake_orch.last.calls == ["run"]
    assert fake_orch.last.cfg.project == "btc"
    assert fake_orch.last.cfg.commands == [["npm", "run", "test"]]


def test_run_passes_test_runner_status_through(fake_orch, config_file):
    fake_orch.kwargs = {"report": RunReport(Outcome.TEST_RUNNER_FAILURE, 1, Stage.TESTING)}
    result = runner.invoke(app, ["run", "-c", str(config_file)])
    assert result.exit_code == 1


def test_run_readiness_timeout_exit_code(fake_orch, config_file):
    fake_orch.kwargs = {
        "report": RunReport(Outcome.READINESS_TIMEOUT, 4, Stage.AWAITING_READY, attempts=5)
    }
    result = runner.invoke(app, ["run", "-c", str(config_file)])
    assert result.exit_code == 4


def test_run_overrides_and_extra_command(fake_orch, config_file):
    result = runner.invoke(
        app,
        ["run", "-c", str(config_file), "-n", "2", "-i", "0.5", "--", "pytest", "-x"],
    )

    assert result.exit_code == 0
    cfg = fake_orch.last.cfg
    assert cfg.max_attempts == 2
    assert cfg.interval_s == 0.5
    assert cfg.commands == [["pytest", "-x"]]


def test_run_invalid_config_exits_2(fake_orch, tmp_path):
    bad = tmp_path / "bad.yaml"
    bad.write_text("max_attempts: 0\n")

    result = runner.invoke(app, ["run", "-c", str(bad)])

    assert result.exit_code == 2
    assert fake_orch.last is None


def test_up_ready(fake_orch, config_file):
    result = runner.invoke(app, ["up", "-c", str(config_file)])

    assert result.exit_code == 0
    assert "btc ready" in result.stdout
    assert fake_orch.last.calls == ["up"]


def test_up_not_ready(fake_orch, config_file):
    fake_orch.kwargs = {
        "report": RunReport(
            Outcome.READINESS_TIMEOUT, 1, Stage.AWAITING_READY, attempts=5, detail="not ready"
        )
    }
    result = runner.invoke(app, ["up", "-c", str(config_file)])
    assert result.exit_code == 1


def test_down(fake_orch, config_file):
    result = runner.invoke(app, ["down", "-c", str(config_file)])

    assert result.exit_code == 0
    assert "btc torn down" in result.stdout
    assert fake_orch.last.calls == ["down"]


def test_down_with_warning_still_exits_zero(fake_orch, config_file):
    fake_orch.kwargs = {"warning": "compose down failed"}
    result = runner.invoke(app, ["down", "-c", str(config_file)])
    assert result.exit_code == 0


def test_probe_ready(fake_orch, config_file):
    result = runner.invoke(app, ["probe", "-c", str(config_file)])

    assert result.exit_code == 0
    assert "ready after 1 attempt(s)" in result.stdout


def test_probe_not_ready(fake_orch, config_file):
    fake_orch.kwargs = {"poll": PollOutcome(ReadinessResult.NOT_READY, 5)}
    result = runner.invoke(app, ["probe", "-c", str(config_file), "-n", "5"])
    assert result.exit_code == 1
    assert fake_orch.last.cfg.max_attempts == 5


def test_log_level_option(fake_orch, config_file, mocker):
    set_level = mocker.patch(f"{CLI_MODPATH}.set_level")
    runner.invoke(app, ["--log-level", "DEBUG", "probe", "-c", str(config_file)])
    set_level.assert_called_once_with("DEBUG")
