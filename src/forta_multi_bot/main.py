from __future__ import annotations

import asyncio
import logging
import sys

from .abi import AbiRegistry
from .bots.base import BotContext
from .config import load_bot_config, load_settings
from .errors import ConfigurationError
from .orchestrator import BotOrchestrator
from .service import MonitorService

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


async def _main() -> None:
    settings = load_settings()
    configure_logging(settings.log_level)
    service = MonitorService(settings)
    await service.run()


def main() -> None:
    try:
        asyncio.run(_main())
    except ConfigurationError as exc:
        logger.error("%s", exc)
        sys.exit(1)
    except KeyboardInterrupt:
        pass


def validate_main() -> None:
    """Validates the bot configuration without connecting to a chain."""
    configure_logging("INFO")
    config_path = sys.argv[1] if len(sys.argv) > 1 else "bot-config.json"
    abi_dir = sys.argv[2] if len(sys.argv) > 2 else "abi"
    try:
        orchestrator = BotOrchestrator(
            load_bot_config(config_path), BotContext(provider=None, abis=AbiRegistry(abi_dir))
        )
        orchestrator.validate_config()
    except ConfigurationError as exc:
        logger.error("%s", exc)
        sys.exit(1)


if __name__ == "__main__":
    main()
