"""
Operator command line for premium entitlements.

Runs a single engine operation against the configured storage and prints
the result as JSON. ``sweep`` is meant to be scheduled (cron, k8s CronJob)
to revoke expired entitlements; ``warm`` reports what a cache preload sees.

Configuration comes from PREMIUM_* environment variables; ``--storage`` and
``--data-dir`` override them.
"""

import argparse
import asyncio
import json
import sys
from typing import Any, Dict, List, Optional

import pydantic

from shared.config import PremiumConfig, get_config
from shared.errors import PremiumError
from shared.logging import configure_logging, set_actor, set_correlation_id
from .engine import PremiumManager


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="premium-admin", description="Manage premium entitlements and codes.")
    parser.add_argument("--storage", choices=["document-db", "local-file"], default=None, help="Storage backend (overrides PREMIUM_STORAGE)")
    parser.add_argument("--data-dir", default=None, help="Data directory for local-file storage (overrides PREMIUM_LOCAL_DATA_DIR)")
    parser.add_argument("--log-level", default=None, help="Log level (overrides PREMIUM_LOG_LEVEL)")

    sub = parser.add_subparsers(dest="command", required=True)

    status = sub.add_parser("status", help="Show an entity's premium state")
    status.add_argument("entity_id")

    grant = sub.add_parser("grant", help="Grant premium to an entity")
    grant.add_argument("entity_id")
    grant.add_argument("--days", type=int, default=None, help="Duration in days (defaults to configured duration)")
    grant.add_argument("--by", dest="actor", required=True, help="Who grants premium")

    revoke = sub.add_parser("revoke", help="Revoke an entity's premium")
    revoke.add_argument("entity_id")

    extend = sub.add_parser("extend", help="Extend an active entitlement")
    extend.add_argument("entity_id")
    extend.add_argument("--days", type=int, required=True)

    create_code = sub.add_parser("create-code", help="Create a redemption code")
    create_code.add_argument("--by", dest="actor", required=True, help="Code creator")
    create_code.add_argument("--duration", type=int, default=None, help="Days granted per redemption")
    create_code.add_argument("--max-activations", type=int, default=None, help="Redemption capacity")

    redeem = sub.add_parser("redeem", help="Redeem a code for an entity")
    redeem.add_argument("entity_id")
    redeem.add_argument("code")
    redeem.add_argument("--by", dest="actor", required=True, help="Who redeems the code")

    code_info = sub.add_parser("code-info", help="Show a redemption code")
    code_info.add_argument("code")

    sub.add_parser("sweep", help="Revoke every expired entitlement")
    sub.add_parser("warm", help="Preload the cache and print the summary")

    return parser


def _load_config(args: argparse.Namespace) -> PremiumConfig:
    overrides: Dict[str, Any] = {}
    if args.storage:
        overrides["storage"] = args.storage
    if args.data_dir:
        overrides["local_data_dir"] = args.data_dir
    if args.log_level:
        overrides["log_level"] = args.log_level
    # One operation per run; `warm` preloads explicitly
    overrides["preload_tables"] = False
    return get_config(**overrides)


async def run(args: argparse.Namespace, config: PremiumConfig, manager: Optional[PremiumManager] = None) -> Dict[str, Any]:
    """Execute the parsed command and return a JSON-serializable result."""
    manager = manager or PremiumManager(config)
    async with manager:
        if args.command == "status":
            is_premium = await manager.is_premium(args.entity_id)
            status = await manager.get_premium_status(args.entity_id)
            return {
                "entity_id": args.entity_id,
                "is_premium": is_premium,
                "days_remaining": await manager.get_premium_time_remaining(args.entity_id),
                "entitlement": status.to_document() if status else None,
            }

        if args.command == "grant":
            days = args.days if args.days is not None else config.default_premium_duration
            entitlement = await manager.add_premium(args.entity_id, days, args.actor)
            return {"entitlement": entitlement.to_document()}

        if args.command == "revoke":
            await manager.remove_premium(args.entity_id)
            return {"entity_id": args.entity_id, "is_premium": False}

        if args.command == "extend":
            expires_at = await manager.extend_premium(args.entity_id, args.days)
            return {"entity_id": args.entity_id, "expires_at": expires_at.isoformat()}

        if args.command == "create-code":
            code = await manager.create_premium_code(args.actor, args.duration, args.max_activations)
            return {"code": code}

        if args.command == "redeem":
            redeemed = await manager.redeem_premium_code(args.entity_id, args.code, args.actor)
            return {"entity_id": args.entity_id, "code": args.code, "redeemed": redeemed}

        if args.command == "code-info":
            info = await manager.get_premium_code_info(args.code)
            return {"code": args.code, "info": info.to_document() if info else None}

        if args.command == "sweep":
            removed = await manager.check_expired_premiums()
            return {"removed": removed, "count": len(removed)}

        if args.command == "warm":
            return await manager.preloader.warm()

    raise ValueError(f"Unknown command: {args.command}")


def main(argv: Optional[List[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    try:
        config = _load_config(args)
    except pydantic.ValidationError as exc:
        print(f"[premium-admin] invalid configuration: {exc}", file=sys.stderr)
        return 2

    configure_logging(config.service_name, config.log_level)
    set_correlation_id()
    set_actor(getattr(args, "actor", None) or "premium-admin")

    try:
        result = asyncio.run(run(args, config))
    except KeyboardInterrupt:
        return 130
    except PremiumError as exc:
        print(json.dumps(exc.to_response().model_dump(), indent=2), file=sys.stderr)
        return 1

    print(json.dumps(result, indent=2, default=str))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
