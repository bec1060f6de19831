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

from typing import Annotated, Optional

import typer
from rich.console import Console

from ..config.harness import HarnessConfig, _load_harness_config
from ..config.settings import get_settings
from ..core.orchestrator import Orchestrator
from ..exceptions import ConfigError
from ..helpers.logger import set_level, setup_logger
from ..utils.version import get_version

app = typer.Typer(name="regtest-harness CLI", no_args_is_help=True)

console = Console()
logger = setup_logger("regtest_harness.cli", console=console)

ConfigOption = Annotated[
    typer.FileText,
    typer.Option(..., "-c", "--config", help="Path to the harness YAML config"),
]


@app.callback()
def main_callback(
    log_level: Annotated[
        Optional[str],
        typer.Option("--log-level", help="Override REGTEST_HARNESS_LOG_LEVEL"),
    ] = None,
):
    set_level(log_level or get_settings().log_level)


def _load(config, **overrides) -> HarnessConfig:
    try:
        return _load_harness_config(config, **overrides)
    except ConfigError as e:
        logger.error(f"[red]Invalid configuration: {e}")
        raise typer.Exit(code=2)


def _with_status(cfg: HarnessConfig, fn):
    """Run ``fn(orchestrator)`` with a live spinner fed by readiness attempts."""
    with console.status(f"[bold green]Waiting for {cfg.rpc_url}…") as status:

        def _on_attempt(attempt: int, reason: str) -> None:
            status.update(
                f"[yellow]Probing {cfg.rpc_url} (attempt {attempt}/{cfg.max_attempts}, {reason})…"
            )

        return fn(Orchestrator.from_config(cfg, on_attempt=_on_attempt))


@app.command("version", short_help="Show the version of the regtest-harness CLI")
def version(short: bool = False):
    v = get_version()
    print(v if short else f"regtest-harness CLI Version: {v}")
    raise typer.Exit()


@app.command(
    "run",
    short_help="Provision the node, wait until ready, run the tests, tear down",
    context_settings={"allow_extra_args": True, "ignore_unknown_options": True},
)
def run(
    ctx: typer.Context,
    config: ConfigOption,
    max_attempts: Annotated[
        Optional[int],
        typer.Option("--max-attempts", "-n", min=1, help="Readiness probe attempts"),
    ] = None,
    interval: Annotated[
        Optional[float],
        typer.Option("--interval", "-i", min=0, help="Seconds between readiness probes"),
    ] = None,
):
    """
    Run the whole sequence.

    Extra arguments after `--` replace the configured test commands with a
    single command, e.g. `regtest-harness run -c harness.yaml -- npm run test`.
    The exit code is the test runner's exit code.
    """
    cfg = _load(config, max_attempts=max_attempts, interval_s=interval)
    if ctx.args:
        cfg.commands = [list(ctx.args)]

    # No spinner: it would interleave with the suite's own output.
    orchestrator = Orchestrator.from_config(cfg)
    report = orchestrator.run()
    raise typer.Exit(code=report.exit_code)


@app.command("up", short_help="Provision the node and wait until it is ready")
def up(config: ConfigOption):
    cfg = _load(config)
    report = _with_status(cfg, lambda orch: orch.up())
    if report.ok:
        typer.echo(f"✅ {cfg.project} ready at {cfg.rpc_url}")
    else:
        typer.echo(f"❌ {report.outcome.value}: {report.detail}", err=True)
    raise typer.Exit(code=report.exit_code)


@app.command("down", short_help="Tear down the node and its volumes")
def down(config: ConfigOption):
    cfg = _load(config)
    warning = Orchestrator.from_config(cfg).down()
    if warning:
        typer.echo(f"⚠️  {warning}", err=True)
    else:
        typer.echo(f"✅ {cfg.project} torn down.")


@app.command("probe", short_help="Wait until the node answers its health check")
def probe(
    config: ConfigOption,
    max_attempts: Annotated[
        Optional[int],
        typer.Option("--max-attempts", "-n", min=1, help="Readiness probe attempts"),
    ] = None,
    interval: Annotated[
        Optional[float],
        typer.Option("--interval", "-i", min=0, help="Seconds between readiness probes"),
    ] = None,
):
    cfg = _load(config, max_attempts=max_attempts, interval_s=interval)
    outcome = _with_status(cfg, lambda orch: orch.wait_until_ready())
    if outcome.ready:
        typer.echo(f"✅ ready after {outcome.attempts} attempt(s)")
        raise typer.Exit(code=0)
    typer.echo(f"❌ not ready after {outcome.attempts} attempt(s)", err=True)
    raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
