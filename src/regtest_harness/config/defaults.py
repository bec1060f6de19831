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

"""Site-wide defaults shared by every harness config on a machine.

A ``defaults.yaml`` takes the same keys as a harness config. Whatever a harness
config sets wins; whatever it leaves out is taken from here, and only then from
the built-in defaults. Keys may be grouped one level deep by prefix, so

.. code-block:: yaml

    rpc:
      url: http://10.0.0.5:18443
      user: bob
    max_attempts: 20
    commands:
      - npm run test

is the same as writing ``rpc_url``, ``rpc_user``, ``max_attempts`` and
``commands`` at the top level.
"""

from collections.abc import Collection, Mapping
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml

from regtest_harness.config.settings import get_settings
from regtest_harness.exceptions import ConfigError
from regtest_harness.helpers.logger import setup_logger

logger = setup_logger(__name__)


def _candidate_files() -> list[Path]:
    # First hit wins. settings.defaults_file covers REGTEST_HARNESS_DEFAULTS
    # and <REGTEST_HARNESS_HOME>/defaults.yaml.
    candidates = [
        Path.cwd() / "defaults.yaml",
        Path.cwd() / ".regtest_harness" / "defaults.yaml",
    ]
    configured = get_settings().defaults_file
    if configured:
        candidates.insert(0, Path(configured).expanduser())
    return candidates


def find_defaults_file() -> Path | None:
    for p in _candidate_files():
        if p.is_file():
            return p
    return None


@lru_cache(maxsize=1)
def load_defaults() -> dict[str, Any]:
    """Parse the active ``defaults.yaml``; ``{}`` when there is none."""
    path = find_defaults_file()
    if path is None:
        return {}
    logger.debug(f"Using defaults file: {path}")
    try:
        data = yaml.safe_load(path.read_text()) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Cannot load defaults file {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Defaults file {path} must be a YAML mapping")
    return data


def _flatten(data: Mapping[str, Any], fields: Collection[str]) -> dict[str, Any]:
    flat: dict[str, Any] = {}
    for key, value in data.items():
        if key in fields or not isinstance(value, dict):
            flat[key] = value
            continue
        for sub, sub_value in value.items():
            flat[f"{key}_{sub}"] = sub_value
    return flat


def _is_unset(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def apply_defaults(values: Mapping[str, Any], fields: Collection[str]) -> dict[str, Any]:
    """Return ``values`` with missing ``fields`` filled in from ``defaults.yaml``.

    Raises:
        ConfigError: the defaults file is unreadable or names keys that are
            not in ``fields``.
    """
    defaults = load_defaults()
    if not defaults:
        return dict(values)

    flat = _flatten(defaults, fields)
    unknown = sorted(set(flat) - set(fields))
    if unknown:
        raise ConfigError(
            f"Unknown key(s) in defaults file {find_defaults_file()}: {', '.join(unknown)}"
        )

    # empty values in defaults.yaml mean "not set"
    flat = {k: v for k, v in flat.items() if not _is_unset(v)}
    return {**flat, **values}


def reload_defaults_cache() -> None:
    load_defaults.cache_clear()
