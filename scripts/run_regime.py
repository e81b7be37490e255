"""
Regime engine CLI

  python scripts/run_regime.py today
  python scripts/run_regime.py history --start 2025-11-01 --end 2025-12-31
  python scripts/run_regime.py sweep --factors 0.5,0.75,1.0,1.25,1.5
"""

import argparse
import asyncio
import json
import logging
import sys

from regime_engine.config import settings
from regime_engine.core.errors import RegimeEngineError, RegimeNotReadyError
from regime_engine.core.logging import setup_logging
from regime_engine.services.factory import build_regime_service
from regime_engine.utils.time import parse_iso_date

logger = logging.getLogger("run_regime")

DEFAULT_FACTORS = "0.5,0.75,1.0,1.25,1.5"


async def run_today(service):
    snapshot = await service.get_today()
    print(json.dumps(snapshot.to_dict(), indent=2))


async def run_history(service, start, end):
    rows = await service.get_history(start, end)
    for row in rows:
        print(
            f"{row.date}  {row.regime.value:<10} {row.risk_regime.value:<9} "
            f"risk={row.risk_score:+d} infl={row.infl_score:+.2f} "
            f"stocks={row.allocation.stocks_actual:.3f} gold={row.allocation.gold_actual:.3f} "
            f"btc={row.allocation.btc_actual:.3f} cash={row.allocation.cash:.3f}  [{row.source.value}]"
        )
    logger.info(f"{len(rows)} rows")


async def run_sweep(service, factors):
    results = await service.sweep_thresholds(factors)
    for result in results:
        print(
            f"x{result['factor']:<5} {result['asof']}  {result['regime']:<10} "
            f"risk={result['risk_score']:+d} infl={result['infl_score']:+.2f}"
            f"{'  (stress override)' if result['stress_override'] else ''}"
        )


def parse_factors(value):
    try:
        factors = [float(part) for part in value.split(",") if part.strip()]
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid factor list: {value}")
    if not factors or any(f <= 0 for f in factors):
        raise argparse.ArgumentTypeError("Factors must be positive numbers")
    return factors


def parse_date_arg(value):
    try:
        return parse_iso_date(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Expected YYYY-MM-DD, got {value}")


async def main(args):
    service = build_regime_service(settings)
    try:
        if args.command == "today":
            await run_today(service)
        elif args.command == "history":
            if args.start and args.end and args.start > args.end:
                logger.error("--start must be on or before --end")
                return 2
            await run_history(service, args.start, args.end)
        elif args.command == "sweep":
            await run_sweep(service, args.factors)
    except RegimeNotReadyError as e:
        logger.error(f"Not ready: {e.reason}")
        return 1
    except RegimeEngineError as e:
        logger.error(f"Failed: {e}")
        return 1
    finally:
        await service.writer_lock.close()
    return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Regime Classification & Allocation Engine")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("today", help="Compute (or read) today's snapshot")

    history = sub.add_parser("history", help="Dump snapshots in a date range")
    history.add_argument("--start", type=parse_date_arg, default=None, help="YYYY-MM-DD")
    history.add_argument("--end", type=parse_date_arg, default=None, help="YYYY-MM-DD")

    sweep = sub.add_parser("sweep", help="Threshold sensitivity sweep over one fetch")
    sweep.add_argument("--factors", type=parse_factors, default=parse_factors(DEFAULT_FACTORS),
                       help="Comma-separated threshold scale factors")

    args = parser.parse_args()
    setup_logging(settings.LOG_LEVEL)
    sys.exit(asyncio.run(main(args)))
