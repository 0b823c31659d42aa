from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from .bots.base import BotContext, BotModule
from .bots.registry import BOT_REGISTRY
from .config import BotConfig, ProtocolConfig
from .errors import ConfigurationError, ConfigValidationFailed
from .events import BlockEvent, TransactionEvent
from .types import Finding

logger = logging.getLogger(__name__)


class OrchestratorState(Enum):
    UNCONFIGURED = "unconfigured"
    VALIDATING = "validating"
    INITIALIZED = "initialized"
    RUNNING = "running"


@dataclass
class RunningBot:
    config: BotConfig
    module: BotModule
    state: Any


class BotOrchestrator:
    """Validates, initializes and dispatches events to every configured bot."""

    def __init__(
        self,
        protocol: ProtocolConfig,
        context: BotContext,
        registry: Mapping[str, BotModule] = BOT_REGISTRY,
    ) -> None:
        self.protocol = protocol
        self.context = context
        self.registry = registry
        self.state = OrchestratorState.UNCONFIGURED
        self.validated = False
        self.bots: list[RunningBot] = []

    @property
    def gather_mode(self) -> str:
        return self.protocol.gather_mode

    def validate_config(self) -> None:
        self.state = OrchestratorState.VALIDATING
        errors: list[str] = []
        for bot in self.protocol.bots:
            module = self.registry.get(bot.bot_type)
            if module is None:
                errors.append(f"{bot.label} module not found!")
                continue
            if module.validate_config is None:
                continue

            logger.info("validating config for %s", bot.label)
            try:
                bot_errors = module.validate_config(bot, self.context)
            except ConfigurationError as exc:
                bot_errors = [str(exc)]
            errors.extend(f"{bot.label} in config - {e}" for e in bot_errors)

        if errors:
            for error in errors:
                logger.error("%s", error)
            self.state = OrchestratorState.UNCONFIGURED
            raise ConfigValidationFailed(errors)
        self.validated = True
        logger.info("Config validated successfully (%d bots)", len(self.protocol.bots))

    async def initialize(self) -> None:
        if not self.validated:
            self.validate_config()

        modules = [self.registry[bot.bot_type] for bot in self.protocol.bots]
        states = await asyncio.gather(
            *(module.initialize(bot, self.context) for bot, module in zip(self.protocol.bots, modules))
        )
        self.bots = [
            RunningBot(config=bot, module=module, state=state)
            for bot, module, state in zip(self.protocol.bots, modules, states)
        ]
        self.state = OrchestratorState.INITIALIZED
        logger.info("Initialized %d bots (gather mode %s)", len(self.bots), self.gather_mode)

    async def handle_transaction(self, event: TransactionEvent) -> list[Finding]:
        return await self._dispatch("handle_transaction", event)

    async def handle_block(self, event: BlockEvent) -> list[Finding]:
        return await self._dispatch("handle_block", event)

    async def _dispatch(self, handler_name: str, event: Any) -> list[Finding]:
        if self.state is OrchestratorState.UNCONFIGURED or self.state is OrchestratorState.VALIDATING:
            raise RuntimeError(f"{handler_name} called before initialization")
        self.state = OrchestratorState.RUNNING

        applicable = [bot for bot in self.bots if getattr(bot.module, handler_name) is not None]
        results = await asyncio.gather(
            *(getattr(bot.module, handler_name)(bot.state, event) for bot in applicable),
            return_exceptions=True,
        )

        batches: list[list[Finding]] = []
        for bot, result in zip(applicable, results):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, BaseException):
                logger.error(
                    "%s failed in %s: %s",
                    bot.config.label,
                    handler_name,
                    result,
                    exc_info=result,
                )
                batches.append([])
                continue
            batches.append(list(result))

        if self.gather_mode == "all" and any(not batch for batch in batches):
            return []
        return [finding for batch in batches for finding in batch]
