"""CLI entrypoints for business API operational tasks."""

from __future__ import annotations

import argparse
import asyncio
import json
from collections.abc import Sequence

from carrier_api.config import configure_structlog, get_settings
from carrier_api.db.session import dispose_engine, get_session_factory
from carrier_api.repositories import UserRepository
from carrier_api.services.api_key_service import get_api_key_service
from carrier_api.services.errors import ServiceError
from carrier_api.services.webhook_dispatcher import get_webhook_dispatcher


async def _run_issue_api_key(email: str, label: str | None, rate_limit: int | None) -> int:
    """Issue a key for an existing business account and print it once."""
    session_factory = get_session_factory()
    try:
        async with session_factory() as db_session:
            owner = await UserRepository().get_by_email(db_session, email)
            if owner is None:
                print(json.dumps({"detail": "Account not found.", "code": "not_found"}))
                return 1
            try:
                issued = await get_api_key_service().issue(
                    db_session, owner, label=label, rate_limit=rate_limit
                )
            except ServiceError as exc:
                print(json.dumps({"detail": exc.detail, "code": exc.code}))
                return 1
    finally:
        await dispose_engine()

    print(
        json.dumps(
            {
                "key_id": str(issued.key_id),
                "api_key": issued.api_key,
                "key_prefix": issued.key_prefix,
                "label": issued.label,
                "rate_limit": issued.rate_limit,
                "expires_at": issued.expires_at.isoformat(),
            }
        )
    )
    return 0


async def _run_emit_event(email: str, event: str, payload: str) -> int:
    """Dispatch one event to the account's webhooks and wait for delivery."""
    try:
        data = json.loads(payload)
    except ValueError:
        data = None
    if not isinstance(data, dict):
        print(json.dumps({"detail": "Payload must be a JSON object.", "code": "invalid_request"}))
        return 1

    session_factory = get_session_factory()
    dispatcher = get_webhook_dispatcher()
    try:
        async with session_factory() as db_session:
            owner = await UserRepository().get_by_email(db_session, email)
        if owner is None:
            print(json.dumps({"detail": "Account not found.", "code": "not_found"}))
            return 1
        try:
            dispatcher.dispatch(event, data, owner.id)
        except ServiceError as exc:
            print(json.dumps({"detail": exc.detail, "code": exc.code}))
            return 1
        await dispatcher.drain()
    finally:
        await dispatcher.aclose()
        await dispose_engine()

    print(json.dumps({"event": event, "owner_id": str(owner.id), "dispatched": True}))
    return 0


def _build_parser() -> argparse.ArgumentParser:
    """Build command-line parser for supported operational commands."""
    parser = argparse.ArgumentParser(prog="python -m carrier_api.cli")
    subcommands = parser.add_subparsers(dest="command", required=True)

    issue_parser = subcommands.add_parser("issue-api-key")
    issue_parser.add_argument("--email", required=True, help="Verified business account email.")
    issue_parser.add_argument("--label", default=None)
    issue_parser.add_argument(
        "--rate-limit",
        type=int,
        default=None,
        help="Requests per rolling hour; defaults to API_KEYS__DEFAULT_RATE_LIMIT_PER_HOUR.",
    )

    emit_parser = subcommands.add_parser("emit-event")
    emit_parser.add_argument("--email", required=True, help="Account whose webhooks receive it.")
    emit_parser.add_argument("--event", required=True, help="Event name, e.g. shipment.updated.")
    emit_parser.add_argument("--payload", default="{}", help="JSON object sent as event data.")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Run CLI command."""
    parser = _build_parser()
    args = parser.parse_args(argv)
    configure_structlog(get_settings())
    if args.command == "issue-api-key":
        return asyncio.run(
            _run_issue_api_key(email=args.email, label=args.label, rate_limit=args.rate_limit)
        )
    if args.command == "emit-event":
        return asyncio.run(
            _run_emit_event(email=args.email, event=args.event, payload=args.payload)
        )
    parser.error("Unsupported command")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
