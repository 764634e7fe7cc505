"""Run the price poller for a few cycles and print the collected candle counts.

Usage (from the repository root):
    python -m scripts.poll_prices --cycles 12 --interval 5
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

# Ensure project root is on path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from rwa_signals.config import load_config
from rwa_signals.feed.price_client import JupiterPriceClient
from rwa_signals.instruments import InstrumentRegistry
from rwa_signals.market.candles import CandleAggregator
from rwa_signals.poller import PricePoller


async def _main(cycles: int, interval: float) -> None:
    config = load_config()
    registry = InstrumentRegistry()
    aggregator = CandleAggregator(max_candles=config.max_candles)
    poller = PricePoller(
        JupiterPriceClient(config.price_api_url, timeout=config.fetch_timeout_seconds),
        registry,
        aggregator,
        poll_interval=interval,
        fetch_timeout=config.fetch_timeout_seconds,
        max_concurrency=config.max_concurrency,
    )
    results = await poller.run(max_cycles=cycles)
    failed = sum(len(r["failed"]) for r in results)
    logging.getLogger(__name__).info("Done: %d cycles, %d failed fetches", len(results), failed)

    by_symbol = {
        registry.get(instrument_id).symbol: counts
        for instrument_id, counts in aggregator.stats().items()
    }
    print(json.dumps(by_symbol, indent=2))


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Poll RWA prices and build candles")
    parser.add_argument("--cycles", type=int, default=12)
    parser.add_argument("--interval", type=float, default=5.0)
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
    )

    asyncio.run(_main(args.cycles, args.interval))
