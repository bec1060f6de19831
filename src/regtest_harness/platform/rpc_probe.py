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

from dataclasses import dataclass, field
from enum import Enum
import json
import time
from typing import Any, Callable

import requests

from regtest_harness.helpers.logger import setup_logger

logger = setup_logger(__name__)

DEFAULT_RPC_URL = "http://127.0.0.1:18443"
DEFAULT_RPC_METHOD = "getblockchaininfo"
DEFAULT_MARKER = "chain"


class ReadinessResult(str, Enum):
    READY = "READY"
    NOT_READY = "NOT_READY"


@dataclass
class PollOutcome:
    result: ReadinessResult
    attempts: int

    @property
    def ready(self) -> bool:
        return self.result is ReadinessResult.READY


def jsonrpc_payload(method: str = DEFAULT_RPC_METHOD, request_id: str = "ping") -> dict:
    """Build a JSON-RPC 1.0 request body for a parameterless call."""
    return {"jsonrpc": "1.0", "id": request_id, "method": method, "params": []}


def result_has_field(marker: str = DEFAULT_MARKER) -> Callable[[str], bool]:
    """Predicate: the body is a JSON-RPC response whose ``result`` holds ``marker``.

    Anything else (non-JSON, truncated JSON, an RPC ``error`` object, a
    ``null`` result) is considered not ready.
    """

    def _predicate(body: str) -> bool:
        try:
            payload = json.loads(body)
        except ValueError:
            return False
        if not isinstance(payload, dict):
            return False
        result = payload.get("result")
        return isinstance(result, dict) and marker in result

    return _predicate


@dataclass
class ReadinessProbe:
    """One health-check definition against the dependency's RPC endpoint.

    Attributes
    ----------
    url: str
        Endpoint receiving the request.
    payload: dict
        Request body, sent as JSON text.
    predicate: Callable[[str], bool]
        Condition over the response body that means "ready".
    timeout_s: float
        Per-attempt request timeout.
    auth: tuple[str, str] | None
        Basic-auth credentials, if the endpoint requires them.
    headers: dict[str, str]
        Extra request headers.
    """

    url: str = DEFAULT_RPC_URL
    payload: dict[str, Any] = field(default_factory=jsonrpc_payload)
    predicate: Callable[[str], bool] = field(default_factory=result_has_field)
    timeout_s: float = 5.0
    auth: tuple[str, str] | None = None
    headers: dict[str, str] = field(default_factory=lambda: {"content-type": "text/plain;"})

    def attempt(self, http_post: Callable = requests.post) -> tuple[bool, str]:
        """Issue a single request.

        Returns ``(ready, reason)``. Transport errors propagate as
        ``requests.RequestException``; the polling loop treats them as
        "not ready yet".
        """
        r = http_post(
            self.url,
            data=json.dumps(self.payload),
            headers=self.headers,
            auth=self.auth,
            timeout=self.timeout_s,
        )
        if not 200 <= r.status_code < 300:
            return False, f"HTTP {r.status_code}"
        if not self.predicate(r.text):
            return False, "unexpected response body"
        return True, "ok"


def wait_until_ready(
    probe: ReadinessProbe,
    max_attempts: int,
    interval_s: float,
    *,
    sleep: Callable[[float], None] = time.sleep,
    http_post: Callable = requests.post,
    on_attempt: Callable[[int, str], None] | None = None,
) -> PollOutcome:
    """Poll ``probe`` until it reports ready or ``max_attempts`` is exhausted.

    The loop short-circuits on the first successful attempt, so a healthy
    service costs exactly one request and no sleep. Failed attempts are
    separated by ``interval_s``; there is no sleep after the final one.

    Testability: pass fake ``sleep`` and ``http_post`` in tests.
    """
    if max_attempts < 1:
        raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")

    for attempt in range(1, max_attempts + 1):
        try:
            ready, reason = probe.attempt(http_post=http_post)
        except requests.RequestException as e:
            ready, reason = False, type(e).__name__

        if on_attempt is not None:
            on_attempt(attempt, reason)

        if ready:
            logger.info(f"[bold green]{probe.url} is ready (attempt {attempt}/{max_attempts}).")
            return PollOutcome(ReadinessResult.READY, attempt)

        if attempt < max_attempts:
            logger.info(
                f"[yellow]{probe.url} not ready yet ({reason}), "
                f"attempt {attempt}/{max_attempts}, retrying in {interval_s}s…"
            )
            sleep(interval_s)

    logger.warning(f"[red]{probe.url} not ready after {max_attempts} attempt(s).")
    return PollOutcome(ReadinessResult.NOT_READY, max_attempts)
