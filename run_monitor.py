#!/usr/bin/env python3
"""
DLMM position monitor.

Usage:
    python run_monitor.py run <config>                  # open a position and monitor it
    python run_monitor.py run <config> --position <id>  # attach to an existing position
    python run_monitor.py show <config>                 # validate and print a config
"""

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import ValidationError

from config import settings
from dlmm_bot.controllers.generic.dlmm_lp import DLMMLPConfig, DLMMLPController
from dlmm_bot.controllers.generic.dlmm_lp_domain.runtime import GatewayLPAdapter, PriceProvider
from dlmm_bot.scripts.lp.log_filters import set_http_request_logs_suppressed
from dlmm_bot.scripts.lp.status_formatter import format_kv_table
from services.gateway_client import GatewayClient
from services.price_feed import JupiterPriceFeed

logger = logging.getLogger("dlmm_monitor")


def setup_logging() -> None:
    handlers = [logging.StreamHandler()]
    if settings.logging.file:
        handlers.append(logging.FileHandler(settings.logging.file))
    logging.basicConfig(
        level=getattr(logging, settings.logging.level.upper(), logging.INFO),
        format=settings.logging.format,
        handlers=handlers,
    )
    set_http_request_logs_suppressed(True)


def resolve_config_path(name: str) -> Path:
    path = Path(name)
    if path.exists():
        return path
    base = Path(__file__).parent / settings.app.controllers_path
    for candidate in (base / name, base / f"{name}.yml", base / f"{name}.yaml"):
        if candidate.exists():
            return candidate
    raise FileNotFoundError(f"config not found: {name}")


def load_config(name: str) -> DLMMLPConfig:
    path = resolve_config_path(name)
    with open(path) as f:
        data: Dict[str, Any] = yaml.safe_load(f) or {}
    return DLMMLPConfig.model_validate(data)


def show(config: DLMMLPConfig) -> None:
    rows = []
    for key, value in config.model_dump(mode="json").items():
        rows.append(("config", key, "" if value is None else str(value)))
    for line in format_kv_table(rows):
        print(line)


async def run(config: DLMMLPConfig, position_id: Optional[str] = None) -> int:
    gateway_settings = settings.gateway
    if not gateway_settings.wallet_address:
        logger.error("GATEWAY_WALLET_ADDRESS is not set")
        return 2

    client = GatewayClient(base_url=gateway_settings.url, timeout=gateway_settings.timeout)
    feed = JupiterPriceFeed(
        base_url=settings.price_feed.url,
        api_key=settings.price_feed.api_key,
        cache_ttl_sec=settings.price_feed.cache_ttl_sec,
        timeout=settings.price_feed.timeout,
    )
    prices = PriceProvider(feed)
    adapter = GatewayLPAdapter(
        client=client,
        pool_address=config.pool_address,
        network=gateway_settings.network,
        wallet_address=gateway_settings.wallet_address,
        reserve_mint=config.reserve_mint,
        price_provider=prices,
        fee_buffer_lamports=config.fee_buffer_lamports,
        haircut_bps=config.haircut_bps,
        swap_connector=gateway_settings.swap_connector,
        chain=gateway_settings.chain,
    )
    controller = DLMMLPController(config, pool=adapter, swaps=adapter, prices=prices)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, controller.request_stop)
        except NotImplementedError:
            logger.debug(f"Signal handler for {sig!r} not supported on this platform")

    try:
        await controller.run(position_id)
    finally:
        await client.close()
        await feed.close()
    return 1 if controller.fatal else 0


def main() -> int:
    parser = argparse.ArgumentParser(
        description="DLMM bin-liquidity position monitor",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python run_monitor.py run dlmm_lp_example
  python run_monitor.py run dlmm_lp_example --position <position address>
  python run_monitor.py show dlmm_lp_example
        """
    )
    subparsers = parser.add_subparsers(dest="command", help="command")

    run_p = subparsers.add_parser("run", help="open (or attach to) a position and monitor it")
    run_p.add_argument("config", help="config file path or name under the controllers directory")
    run_p.add_argument("--position", help="attach to an existing position instead of opening one")

    show_p = subparsers.add_parser("show", help="validate and print a config")
    show_p.add_argument("config", help="config file path or name under the controllers directory")

    args = parser.parse_args()
    if not args.command:
        parser.print_help()
        return 0

    setup_logging()
    try:
        config = load_config(args.config)
    except (FileNotFoundError, ValidationError, yaml.YAMLError) as e:
        logger.error(f"Invalid config {args.config}: {e}")
        return 2

    if args.command == "show":
        show(config)
        return 0
    return asyncio.run(run(config, args.position))


if __name__ == "__main__":
    sys.exit(main())
