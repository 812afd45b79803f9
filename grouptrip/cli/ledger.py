"""CLI entry point for ledger maintenance of one activity.

Usage:
    python -m grouptrip.cli.ledger recompute ACTIVITY_ID
    python -m grouptrip.cli.ledger summary ACTIVITY_ID

Commands:
    recompute - Re-derive activity total_cost and participant balances
    summary   - Print who owes whom and the transfers that settle the activity

Exit Codes:
    0 - Success
    1 - Failure: Error encountered; database state unchanged

Logging:
    INFO level logs to both stdout and the configured LOG_FILE
"""

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from grouptrip.services.balance_service import BalanceService
from grouptrip.services.config import load_config
from grouptrip.services.db import create_engine_for, create_session_factory
from grouptrip.services.logging import setup_logging

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="grouptrip-ledger",
        description="Recompute or inspect the ledger of one activity",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    recompute = subparsers.add_parser("recompute", help="Re-derive total cost and balances")
    recompute.add_argument("activity_id", type=int)

    summary = subparsers.add_parser("summary", help="Print debt summary and settlement plan")
    summary.add_argument("activity_id", type=int)
    return parser


async def run(command: str, activity_id: int) -> None:
    config = load_config()
    setup_logging(config.log_file, config.log_level)

    engine = create_engine_for(config.database_url)
    session_factory = create_session_factory(engine)
    try:
        async with session_factory() as session:
            service = BalanceService.from_config(session, config)

            if command == "recompute":
                try:
                    total, balances = await service.recompute(activity_id)
                    await service.check_conservation(activity_id)
                    await session.commit()
                except Exception:
                    await session.rollback()
                    raise
                logger.info(f"Activity {activity_id}: total_cost={total}")
                for entry in balances:
                    logger.info(f"  member {entry.member_id}: {entry.balance}")
                return

            for entry in await service.debt_summary(activity_id):
                print(f"{entry.status.value:<9} {entry.name or entry.member_id}: {entry.balance}")
            for transfer in await service.settlement_plan(activity_id):
                print(
                    f"member {transfer.from_member_id} -> member {transfer.to_member_id}: "
                    f"{transfer.amount}"
                )
    finally:
        await engine.dispose()


async def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for the ledger CLI.

    Returns:
        Exit code: 0 for success, 1 for failure
    """
    args = build_parser().parse_args(argv)
    try:
        await run(args.command, args.activity_id)
        return 0
    except KeyboardInterrupt:
        logger.warning("Interrupted by user")
        return 1
    except Exception as e:
        logger.error(f"Ledger {args.command} failed: {e}", exc_info=True)
        return 1


def cli() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    exit_code = asyncio.run(main())
    sys.exit(exit_code)
