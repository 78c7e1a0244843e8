from __future__ import annotations

import argparse
import asyncio
import os
import sys

from .app import RaterService
from .catalog import ConfigurationError
from .config import DEFAULT_CONFIG_PATH, load_service_config
from .logging_config import logger, setup_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="rater", description="Line-protocol rate limiting service")
    parser.add_argument(
        "-c",
        "--config",
        default=os.environ.get("RATER_CONFIG", DEFAULT_CONFIG_PATH),
        help="TOML file with [settings] and [limits] tables",
    )
    parser.add_argument("--check", action="store_true", help="Validate the configuration and exit")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging()
    try:
        config = load_service_config(args.config)
    except ConfigurationError as exc:
        logger.critical("config.error", path=args.config, reason=str(exc))
        return 2
    if args.check:
        return 0

    settings = config.settings
    setup_logging(settings.log_level, settings.log_file)
    service = RaterService(settings, config.catalog)
    try:
        asyncio.run(service.run())
    except Exception:
        logger.critical("service.fatal", exc_info=True)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
