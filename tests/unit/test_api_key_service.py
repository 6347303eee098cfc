"""Unit tests for API key core and service logic."""

from __future__ import annotations

import base64
import hashlib
from datetime import timedelta
from uuid import uuid4

import pytest
from fakes import (
    FakeClock,
    FakeDBSession,
    InMemoryApiKeyRepository,
    InMemoryUsageLogRepository,
    InMemoryUserRepository,
    make_business_user,
)

from carrier_api.core.api_keys import ApiKeyCore
from carrier_api.models.api_key import ApiKeyStatus
from carrier_api.services.api_key_service import ApiKeyService
from carrier_api.services.errors import (
    ApiKeyAllocationError,
    InvalidRequestError,
    NotFoundError,
    PermissionDeniedError,
)


class _ScriptedKeyCore(ApiKeyCore):
    """Key core returning predetermined raw keys in order."""

    def __init__(self, keys: list[str]) -> None:
        self._keys = list(keys)

    def generate_raw_key(self) -> str:
        return self._keys.pop(0)


@pytest.fixture
def service(
    api_key_repo: InMemoryApiKeyRepository,
    usage_log_repo: InMemoryUsageLogRepository,
    users: InMemoryUserRepository,
    clock: FakeClock,
) -> ApiKeyService:
    return ApiKeyService(
        core=ApiKeyCore(),
        api_keys=api_key_repo,  # type: ignore[arg-type]
        usage_logs=usage_log_repo,  # type: ignore[arg-type]
        users=users,  # type: ignore[arg-type]
        now=clock,
    )


def test_core_generate_key_format() -> None:
    """Generated keys carry the rc_ prefix and a 43-character random body."""
    core = ApiKeyCore()
    raw_key = core.generate_raw_key()
    assert raw_key.startswith("rc_")
    assert len(raw_key) == 3 + 43
    assert "=" not in raw_key
    assert core.is_valid_format(raw_key) is True
    assert core.key_prefix(raw_key) == raw_key[:8]
    assert core.generate_raw_key() != raw_key


def test_core_hash_is_base64_sha256() -> None:
    core = ApiKeyCore()
    expected = base64.b64encode(hashlib.sha256(b"rc_example").digest()).decode("ascii")
    assert core.hash_key("rc_example") == expected
    assert len(expected) == 44
    assert core.hash_matches(expected, "rc_example") is True
    assert core.hash_matches(expected, "rc_other") is False


@pytest.mark.parametrize("raw_key", [None, "", "rc_", "sk_live_value", "RC_upper"])
def test_core_rejects_malformed_keys(raw_key: str | None) -> None:
    assert ApiKeyCore().is_valid_format(raw_key) is False


@pytest.mark.asyncio
async def test_issue_then_validate_returns_owner(
    service: ApiKeyService,
    api_key_repo: InMemoryApiKeyRepository,
    users: InMemoryUserRepository,
    db_session: FakeDBSession,
    clock: FakeClock,
) -> None:
    """A freshly issued key authenticates its owner and records usage."""
    owner = users.put(make_business_user())

    issued = await service.issue(db_session, owner, label="Orders")  # type: ignore[arg-type]

    assert issued.api_key.startswith("rc_")
    assert issued.key_prefix == issued.api_key[:8]
    assert issued.rate_limit == 1000
    assert issued.expires_at == clock() + timedelta(days=365)
    stored = api_key_repo.rows[issued.key_id]
    assert stored.key_hash != issued.api_key
    assert stored.status == ApiKeyStatus.ACTIVE

    clock.advance(seconds=5)
    resolved = await service.validate(db_session, issued.api_key)  # type: ignore[arg-type]

    assert resolved is owner
    assert stored.requests_count == 1
    assert stored.last_used_at == clock()


@pytest.mark.asyncio
async def test_issue_uses_timestamp_label_when_missing(
    service: ApiKeyService,
    users: InMemoryUserRepository,
    db_session: FakeDBSession,
    clock: FakeClock,
) -> None:
    owner = users.put(make_business_user())
    issued = await service.issue(db_session, owner, label="   ")  # type: ignore[arg-type]
    assert issued.label == f"API Key {clock().isoformat()}"


@pytest.mark.asyncio
async def test_issue_rejects_non_business_and_unverified_accounts(
    service: ApiKeyService,
    users: InMemoryUserRepository,
    db_session: FakeDBSession,
) -> None:
    consumer = users.put(make_business_user("c@example.com", is_business=False))
    pending = users.put(make_business_user("p@example.com", verified=False))

    with pytest.raises(PermissionDeniedError) as consumer_exc:
        await service.issue(db_session, consumer)  # type: ignore[arg-type]
    with pytest.raises(PermissionDeniedError) as pending_exc:
        await service.issue(db_session, pending)  # type: ignore[arg-type]

    assert consumer_exc.value.status_code == 403
    assert "verified" in pending_exc.value.detail


@pytest.mark.asyncio
async def test_issue_rejects_non_positive_rate_limit(
    service: ApiKeyService,
    users: InMemoryUserRepository,
    db_session: FakeDBSession,
) -> None:
    owner = users.put(make_business_user())
    with pytest.raises(InvalidRequestError):
        await service.issue(db_session, owner, rate_limit=0)  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_issue_regenerates_once_on_hash_collision(
    api_key_repo: InMemoryApiKeyRepository,
    usage_log_repo: InMemoryUsageLogRepository,
    users: InMemoryUserRepository,
    db_session: FakeDBSession,
    clock: FakeClock,
) -> None:
    first, second = "rc_" + "a" * 43, "rc_" + "b" * 43
    owner = users.put(make_business_user())
    seeding = ApiKeyService(
        core=_ScriptedKeyCore([first]),
        api_keys=api_key_repo,  # type: ignore[arg-type]
        usage_logs=usage_log_repo,  # type: ignore[arg-type]
        users=users,  # type: ignore[arg-type]
        now=clock,
    )
    await seeding.issue(db_session, owner)  # type: ignore[arg-type]

    service = ApiKeyService(
        core=_ScriptedKeyCore([first, second]),
        api_keys=api_key_repo,  # type: ignore[arg-type]
        usage_logs=usage_log_repo,  # type: ignore[arg-type]
        users=users,  # type: ignore[arg-type]
        now=clock,
    )
    issued = await service.issue(db_session, owner)  # type: ignore[arg-type]

    assert issued.api_key == second
    assert len(api_key_repo.rows) == 2


@pytest.mark.asyncio
async def test_issue_maps_unique_violation_to_allocation_error(
    service: ApiKeyService,
    api_key_repo: InMemoryApiKeyRepository,
    users: InMemoryUserRepository,
    db_session: FakeDBSession,
) -> None:
    owner = users.put(make_business_user())
    api_key_repo.fail_insert = True

    with pytest.raises(ApiKeyAllocationError) as exc_info:
        await service.issue(db_session, owner)  # type: ignore[arg-type]

    assert exc_info.value.status_code == 503
    assert exc_info.value.code == "key_generation_failed"


@pytest.mark.asyncio
async def test_validate_rejects_malformed_and_unknown_keys(
    service: ApiKeyService,
    db_session: FakeDBSession,
) -> None:
    assert await service.validate(db_session, None) is None  # type: ignore[arg-type]
    assert await service.validate(db_session, "sk_not_ours") is None  # type: ignore[arg-type]
    assert await service.validate(db_session, "rc_" + "z" * 43) is None  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_expired_key_is_rejected_and_marked_expired(
    service: ApiKeyService,
    api_key_repo: InMemoryApiKeyRepository,
    users: InMemoryUserRepository,
    db_session: FakeDBSession,
    clock: FakeClock,
) -> None:
    """Keys past expiry fail validation and flip to EXPIRED on first use."""
    owner = users.put(make_business_user())
    issued = await service.issue(db_session, owner)  # type: ignore[arg-type]

    clock.advance(days=366)
    result = await service.validate(db_session, issued.api_key)  # type: ignore[arg-type]

    stored = api_key_repo.rows[issued.key_id]
    assert result is None
    assert stored.status == ApiKeyStatus.EXPIRED
    assert stored.requests_count == 0
    assert api_key_repo.saves == 1

    assert await service.validate(db_session, issued.api_key) is None  # type: ignore[arg-type]
    assert api_key_repo.saves == 1


@pytest.mark.asyncio
async def test_rate_limit_rejects_request_past_hourly_budget(
    service: ApiKeyService,
    users: InMemoryUserRepository,
    db_session: FakeDBSession,
) -> None:
    """With a limit of N, the N+1th validation inside the hour is rejected."""
    owner = users.put(make_business_user())
    issued = await service.issue(db_session, owner, rate_limit=3)  # type: ignore[arg-type]

    outcomes = [
        await service.validate(db_session, issued.api_key)  # type: ignore[arg-type]
        for _ in range(4)
    ]

    assert outcomes[:3] == [owner, owner, owner]
    assert outcomes[3] is None


@pytest.mark.asyncio
async def test_sliding_window_forgets_usage_older_than_an_hour(
    service: ApiKeyService,
    users: InMemoryUserRepository,
    db_session: FakeDBSession,
    clock: FakeClock,
) -> None:
    owner = users.put(make_business_user())
    issued = await service.issue(db_session, owner, rate_limit=2)  # type: ignore[arg-type]
    key_hash = service.hash_key(issued.api_key)

    for _ in range(2):
        await service.record_usage_detailed(
            db_session,  # type: ignore[arg-type]
            key_hash=key_hash,
            endpoint="/api/business/webhooks",
            method="GET",
            ip_address="203.0.113.9",
            response_status=200,
            response_time_ms=12,
        )
    assert await service.is_rate_limited(db_session, key_hash) is True  # type: ignore[arg-type]

    clock.advance(seconds=3601)
    assert await service.is_rate_limited(db_session, key_hash) is False  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_unknown_hash_counts_as_rate_limited(
    service: ApiKeyService,
    db_session: FakeDBSession,
) -> None:
    assert await service.is_rate_limited(db_session, "unknown-hash") is True  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_exhausting_one_key_leaves_sibling_key_usable(
    service: ApiKeyService,
    users: InMemoryUserRepository,
    db_session: FakeDBSession,
) -> None:
    owner = users.put(make_business_user())
    first = await service.issue(db_session, owner, rate_limit=2)  # type: ignore[arg-type]
    second = await service.issue(db_session, owner, rate_limit=2)  # type: ignore[arg-type]

    for _ in range(2):
        assert await service.validate(db_session, first.api_key) is owner  # type: ignore[arg-type]
    assert await service.validate(db_session, first.api_key) is None  # type: ignore[arg-type]

    assert await service.validate(db_session, second.api_key) is owner  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_revoke_requires_ownership_and_blocks_validation(
    service: ApiKeyService,
    api_key_repo: InMemoryApiKeyRepository,
    users: InMemoryUserRepository,
    db_session: FakeDBSession,
) -> None:
    owner = users.put(make_business_user())
    intruder = users.put(make_business_user("other@example.com"))
    issued = await service.issue(db_session, owner)  # type: ignore[arg-type]

    with pytest.raises(PermissionDeniedError):
        await service.revoke(db_session, issued.key_id, intruder)  # type: ignore[arg-type]
    assert api_key_repo.rows[issued.key_id].status == ApiKeyStatus.ACTIVE

    with pytest.raises(NotFoundError):
        await service.revoke(db_session, uuid4(), owner)  # type: ignore[arg-type]

    revoked = await service.revoke(db_session, issued.key_id, owner)  # type: ignore[arg-type]
    assert revoked.status == ApiKeyStatus.REVOKED
    assert await service.validate(db_session, issued.api_key) is None  # type: ignore[arg-type]

    again = await service.revoke(db_session, issued.key_id, owner)  # type: ignore[arg-type]
    assert again.status == ApiKeyStatus.REVOKED


@pytest.mark.asyncio
async def test_usage_stats_aggregate_owner_keys(
    service: ApiKeyService,
    users: InMemoryUserRepository,
    db_session: FakeDBSession,
) -> None:
    owner = users.put(make_business_user())
    first = await service.issue(db_session, owner, label="web")  # type: ignore[arg-type]
    second = await service.issue(db_session, owner, label="batch")  # type: ignore[arg-type]
    for _ in range(3):
        await service.validate(db_session, first.api_key)  # type: ignore[arg-type]
    await service.validate(db_session, second.api_key)  # type: ignore[arg-type]
    await service.revoke(db_session, second.key_id, owner)  # type: ignore[arg-type]
    await service.record_usage_detailed(
        db_session,  # type: ignore[arg-type]
        key_hash=service.hash_key(first.api_key),
        endpoint="/api/business/keys",
        method="GET",
        ip_address=None,
        response_status=200,
        response_time_ms=3,
    )

    stats = await service.usage_stats(db_session, owner)  # type: ignore[arg-type]

    assert stats.total_requests == 4
    assert stats.total_keys == 2
    assert stats.active_keys == 1
    assert stats.requests_per_key == {"web": 3, "batch": 1}
    assert stats.average_requests_per_key == 2
    assert stats.requests_last_window == 1
