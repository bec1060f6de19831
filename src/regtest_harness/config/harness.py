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

import io
from pathlib import Path
import shlex
from typing import Annotated, Any

from pydantic import (
    BaseModel,
    Field,
    SecretStr,
    StringConstraints,
    ValidationError,
    field_validator,
    model_validator,
)
import yaml

from regtest_harness.config.defaults import apply_defaults
from regtest_harness.config.settings import get_settings
from regtest_harness.exceptions import ConfigError
from regtest_harness.helpers.logger import setup_logger
from regtest_harness.platform.rpc_probe import (
    DEFAULT_MARKER,
    DEFAULT_RPC_METHOD,
    DEFAULT_RPC_URL,
    ReadinessProbe,
    jsonrpc_payload,
    result_has_field,
)

logger = setup_logger(__name__)


class HarnessConfig(BaseModel):
    # provisioning ------------------------------------------------------------
    project: Annotated[
        str,
        StringConstraints(strip_whitespace=True, to_lower=True, min_length=1, max_length=63),
    ] = Field(
        default="regtest-harness",
        description="Compose project name; identifies the managed resource group",
    )
    compose_file: Path | None = Field(
        default=None,
        description="Compose file; compose's own lookup is used when unset",
    )

    # readiness ---------------------------------------------------------------
    rpc_url: str = DEFAULT_RPC_URL
    rpc_method: str = DEFAULT_RPC_METHOD
    ready_marker: str = Field(
        default=DEFAULT_MARKER,
        description="Field that must be present in the RPC result for the node to be ready",
    )
    rpc_user: str | None = Field(default_factory=lambda: get_settings().rpc_user)
    rpc_password: SecretStr | None = Field(default_factory=lambda: get_settings().rpc_password)

    max_attempts: int = Field(default=10, ge=1)
    interval_s: float = Field(default=3.0, ge=0)
    probe_timeout_s: float = Field(default=5.0, gt=0)
    initial_delay_s: float = Field(
        default=0.0,
        ge=0,
        description="Seconds to wait once after provisioning, before the first probe",
    )

    # tests -------------------------------------------------------------------
    commands: list[list[str]] = Field(
        default_factory=list,
        description="Test commands, run in order after the node is ready",
    )
    working_dir: Path | None = None
    env: dict[str, str] | None = None

    distinct_exit_codes: bool = Field(
        default=False,
        description="Exit 3 on provisioning failure and 4 on readiness timeout instead of 1",
    )

    @model_validator(mode="before")
    @classmethod
    def fill_from_site_defaults(cls, data: Any) -> Any:
        """Keys missing here are taken from `defaults.yaml`, if there is one."""
        if isinstance(data, dict):
            return apply_defaults(data, cls.model_fields)
        return data

    @field_validator("commands", mode="before")
    @classmethod
    def split_command_strings(cls, v: Any) -> Any:
        """Accept ``"npm run test"`` as well as ``["npm", "run", "test"]``."""
        if isinstance(v, str):
            v = [v]
        if isinstance(v, list):
            return [shlex.split(c) if isinstance(c, str) else c for c in v]
        return v

    @field_validator("commands")
    @classmethod
    def no_empty_commands(cls, v: list[list[str]]) -> list[list[str]]:
        if any(not c for c in v):
            raise ValueError("Test commands must not be empty")
        return v

    def to_probe(self) -> ReadinessProbe:
        auth = None
        if self.rpc_user is not None:
            password = self.rpc_password.get_secret_value() if self.rpc_password else ""
            auth = (self.rpc_user, password)
        return ReadinessProbe(
            url=self.rpc_url,
            payload=jsonrpc_payload(self.rpc_method),
            predicate=result_has_field(self.ready_marker),
            timeout_s=self.probe_timeout_s,
            auth=auth,
        )

    @classmethod
    def read(cls, path: str | Path) -> "HarnessConfig":
        try:
            with Path(path).open() as fh:
                return _load_harness_config(fh)
        except OSError as e:
            raise ConfigError(f"Cannot read config {path}: {e}") from e


def _load_harness_config(
    config_file: io.TextIOBase,
    *,
    max_attempts: int | None = None,
    interval_s: float | None = None,
) -> HarnessConfig:
    """Load YAML and apply command-line overrides."""
    try:
        cfg_dict = yaml.safe_load(config_file) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML: {e}") from e
    if not isinstance(cfg_dict, dict):
        raise ConfigError("Config must be a YAML mapping")

    if max_attempts is not None:
        cfg_dict["max_attempts"] = max_attempts
    if interval_s is not None:
        cfg_dict["interval_s"] = interval_s

    try:
        cfg = HarnessConfig.model_validate(cfg_dict)
    except ValidationError as e:
        raise ConfigError(str(e)) from e
    logger.debug(f"Loaded config for project {cfg.project}")
    return cfg
