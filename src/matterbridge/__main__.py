"""Bridge entrypoint. Loads config, builds the bridge, runs until SIGINT/SIGTERM."""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path

from loguru import logger

from matterbridge import __version__
from matterbridge.bridge import Bridge
from matterbridge.config import Config, cfg, load_config_with_env
from matterbridge.errors import AuthenticationError, BridgeConfigurationError, TeamNotFoundError


# pydle logs through the standard library
_INTERCEPTED_LIBRARIES = ["pydle", "pydle.client", "pydle.connection", "pydle.features.ircv3.cap"]


def _intercept_logging(level: str) -> None:
    """Route standard-library logging (pydle) to loguru at ``level``."""

    class InterceptHandler(logging.Handler):
        def emit(self, record: logging.LogRecord) -> None:
            log_level: str | int
            try:
                log_level = logger.level(record.levelname).name
            except ValueError:
                log_level = record.levelno
            logger.patch(
                lambda r: r.update(
                    name=record.name,
                    function=record.funcName,
                    line=record.lineno,
                ),
            ).opt(exception=record.exc_info).log(log_level, record.getMessage())

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for lib in _INTERCEPTED_LIBRARIES:
        lib_logger = logging.getLogger(lib)
        lib_logger.handlers = [InterceptHandler()]
        lib_logger.propagate = False
        lib_logger.setLevel(level)


def setup_logging(verbose: bool = False) -> None:
    """Configure loguru and route pydle logging through it."""
    level = "DEBUG" if verbose else "INFO"
    logger.remove()
    logger.add(
        sys.stderr,
        level=level,
        format=(
            "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | "
            "<cyan>{name}</cyan> | {message}"
        ),
    )
    _intercept_logging(level)


def reload_config(config_path: Path) -> Config:
    """Load config from path and update global cfg."""
    data = load_config_with_env(config_path)
    cfg.reload(data)
    return cfg


def main() -> None:
    """Main entrypoint."""
    parser = argparse.ArgumentParser(description="matterbridge: IRC <-> Mattermost relay")
    parser.add_argument(
        "--config",
        "-c",
        type=Path,
        default=Path("config.yaml"),
        help="Path to config file (default: config.yaml)",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    args = parser.parse_args()

    setup_logging(args.verbose)

    if not args.config.exists():
        logger.error("Config file not found: {}", args.config)
        sys.exit(1)

    try:
        config = reload_config(args.config)
    except BridgeConfigurationError as exc:
        logger.error("Invalid config {}: {}", args.config, exc)
        sys.exit(1)
    logger.info("Config loaded from {}", args.config)

    try:
        asyncio.run(_run(config))
    except (AuthenticationError, TeamNotFoundError) as exc:
        logger.error("Mattermost startup failed: {}", exc)
        sys.exit(1)


async def _run(config: Config) -> None:
    """Async run loop. Runs the bridge until a termination signal."""
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    bridge = Bridge(config)
    try:
        await bridge.run(stop)
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(sig)
        logger.info("Bridge shut down")


if __name__ == "__main__":
    main()
