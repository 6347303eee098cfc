"""Locust scenarios for API-key-authenticated business API throughput."""

from __future__ import annotations

import os
from dataclasses import dataclass

from locust import HttpUser, between, events, task


def _env_bool(name: str, default: bool) -> bool:
    """Read a boolean environment flag."""
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_float(name: str, default: float) -> float:
    """Read a float environment variable with fallback."""
    value = os.environ.get(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


@dataclass(frozen=True)
class LoadSettings:
    """Runtime settings for load-test behavior."""

    api_key: str
    allow_limited: bool
    require_rate_limit: bool
    max_failure_rate_pct: float


SETTINGS = LoadSettings(
    api_key=os.environ.get("CARRIER_LOAD_API_KEY", ""),
    allow_limited=_env_bool("CARRIER_LOAD_ALLOW_LIMITED", False),
    require_rate_limit=_env_bool("CARRIER_LOAD_REQUIRE_RATE_LIMIT", False),
    max_failure_rate_pct=_env_float("CARRIER_LOAD_MAX_FAILURE_RATE_PCT", 0.1),
)

_rate_limit_observed = False


def _is_limited(status_code: int, payload: dict[str, object]) -> bool:
    """Per-IP limits answer 429; exhausted keys answer 401 invalid_api_key."""
    if status_code == 429:
        return True
    return status_code == 401 and payload.get("code") == "invalid_api_key"


class BusinessApiUser(HttpUser):
    """Sustained read traffic against key-protected business routes."""

    wait_time = between(0.05, 0.2)

    def _get(self, path: str) -> None:
        global _rate_limit_observed
        with self.client.get(
            path,
            headers={"X-API-Key": SETTINGS.api_key},
            name=f"GET {path}",
            catch_response=True,
        ) as response:
            if response.status_code == 200:
                response.success()
                return

            payload = response.json() if response.content else {}
            if SETTINGS.allow_limited and _is_limited(response.status_code, payload):
                _rate_limit_observed = True
                response.success()
                return

            response.failure(f"unexpected status={response.status_code}")

    @task(3)
    def list_webhooks(self) -> None:
        self._get("/api/business/webhooks")

    @task(1)
    def usage(self) -> None:
        self._get("/api/business/analytics/usage")


@events.quitting.add_listener
def _on_quitting(environment, **_kwargs) -> None:
    """Enforce pass/fail thresholds at test shutdown."""
    failure_rate_pct = environment.stats.total.fail_ratio * 100.0
    if SETTINGS.max_failure_rate_pct >= 0 and failure_rate_pct > SETTINGS.max_failure_rate_pct:
        print(
            f"[loadtest] failure rate {failure_rate_pct:.3f}% exceeded "
            f"max {SETTINGS.max_failure_rate_pct:.3f}%"
        )
        environment.process_exit_code = 1

    if SETTINGS.require_rate_limit and not _rate_limit_observed:
        print("[loadtest] expected at least one limited response but none were observed")
        environment.process_exit_code = 1
