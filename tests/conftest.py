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

from regtest_harness.config.defaults import reload_defaults_cache
from regtest_harness.config.settings import reload_settings_cache
from regtest_harness.platform.protocols import ServiceHandle, ServiceState


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch, tmp_path):
    """Keep user env, .env files and defaults.yaml out of the tests."""
    for var in (
        "REGTEST_HARNESS_DEFAULTS",
        "REGTEST_HARNESS_LOG_LEVEL",
        "REGTEST_HARNESS_RPC_USER",
        "REGTEST_HARNESS_RPC_PASSWORD",
        "REGTEST_HARNESS_COMPOSE_BIN",
    ):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("REGTEST_HARNESS_HOME", str(tmp_path / "home"))
    monkeypatch.setenv("HOME", str(tmp_path / "user"))
    monkeypatch.chdir(tmp_path)
    reload_settings_cache()
    reload_defaults_cache()
    yield
    reload_settings_cache()
    reload_defaults_cache()


class FakeClock:
    def __init__(self, t0: float = 0.0):
        self.t = t0
        self.sleep_calls = 0
        self.last_slept = []

    def now(self) -> float:
        return self.t

    def sleep(self, dt: float) -> None:
        self.sleep_calls += 1
        self.last_slept.append(dt)
        self.t += dt


@pytest.fixture
def clock():
    return FakeClock()


READY_BODY = '{"result": {"chain": "regtest", "blocks": 0}, "error": null, "id": "ping"}'
WARMUP_BODY = (
    '{"result": null, "error": {"code": -28, "message": "Loading block index..."}, '
    '"id": "ping"}'
)


@pytest.fixture
def rpc_bodies():
    return SimpleNamespace(ready=READY_BODY, warmup=WARMUP_BODY)


def _response(item):
    if isinstance(item, tuple):
        status, text = item
    elif isinstance(item, int):
        status, text = item, ""
    else:
        status, text = 200, item
    return SimpleNamespace(status_code=status, text=text)


@pytest.fixture
def http_post_sequence():
    """
    Returns a factory building a http_post(url, **kwargs) callable that:
    - pops the next item from `sequence` each call
    - raises it if it's an Exception instance
    - returns a 200 response with that body if it's a str
    - returns a response with that status (and empty body) if it's an int
    - returns a response with (status, body) if it's a tuple
    - repeats the last item once the sequence is exhausted
    The callable records every call in `.calls`.
    """

    def _factory(sequence):
        seq = list(sequence)
        calls = []

        def _post(url, **kwargs):
            calls.append((url, kwargs))
            item = seq.pop(0) if seq else sequence[-1]
            if isinstance(item, Exception):
                raise item
            return _response(item)

        _post.calls = calls
        return _post

    return _factory


class FakeProvisioner:
    """Records start/stop calls; optionally fails on start or stop."""

    def __init__(self, *, start_error: Exception | None = None, stop_warning: str | None = None):
        self.start_error = start_error
        self.stop_warning = stop_warning
        self.calls = []
        self.handles = []

    def start(self):
        self.calls.append("start")
        if self.start_error is not None:
            raise self.start_error
        handle = ServiceHandle(name="fake-project", state=ServiceState.RUNNING)
        self.handles.append(handle)
        return handle

    def stop(self, handle):
        self.calls.append(("stop", handle))
        if handle is not None:
            handle.state = ServiceState.STOPPED
        return self.stop_warning


class FakeSuiteRunner:
    def __init__(self, exit_code: int = 0):
        self.exit_code = exit_code
        self.calls = []

    def run(self, commands, *, cwd=None, env=None):
        self.calls.append({"commands": commands, "cwd": cwd, "env": env})
        return self.exit_code


@pytest.fixture
def fake_provisioner():
    return FakeProvisioner


@pytest.fixture
def fake_runner():
    return FakeSuiteRunner
