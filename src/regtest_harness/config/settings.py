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

from functools import lru_cache
from pathlib import Path

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Centralized environment configuration for regtest-harness.

    Env var naming: REGTEST_HARNESS_<FIELD_NAME> (custom aliases below).
    A .env file in CWD or ~/.regtest_harness/.env is read automatically.
    """

    model_config = SettingsConfigDict(
        env_prefix="REGTEST_HARNESS_",
        env_file=(".env", "~/.regtest_harness/.env"),
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # --- General -------------------------------------------------------------
    log_level: str = "INFO"
    home: Path = Field(
        default=Path("~/.regtest_harness").expanduser(),
        description="Path to regtest-harness home directory",
    )
    defaults_file: Path | None = Field(
        default_factory=lambda data: data["home"] / "defaults.yaml",
        alias="REGTEST_HARNESS_DEFAULTS",
        description="Path to YAML with overridable defaults",
    )

    # --- Node RPC ------------------------------------------------------------
    rpc_user: str = Field(
        default="alice",
        description="Basic-auth user for the node's JSON-RPC interface",
    )  # REGTEST_HARNESS_RPC_USER
    rpc_password: SecretStr = Field(
        default=SecretStr("password"),
        description="Basic-auth password for the node's JSON-RPC interface",
    )  # REGTEST_HARNESS_RPC_PASSWORD

    # --- Provisioning --------------------------------------------------------
    compose_bin: str = Field(
        default="docker",
        description="Container CLI used to drive `compose` (docker or podman)",
    )  # REGTEST_HARNESS_COMPOSE_BIN


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Cached accessor. Call this wherever you need settings.
    Tests can `cache_clear()` before reading to pick up monkeypatched env.
    """
    return Settings()


def reload_settings_cache() -> None:
    get_settings.cache_clear()  # type: ignore[attr-defined]
