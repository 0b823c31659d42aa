from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from ..abi import extract_args
from ..config import BotConfig
from ..events import TransactionEvent
from ..expressions import evaluate_expression
from ..resolver import MonitorEntry, resolve_entries
from ..types import Finding
from .base import (
    BotContext,
    BotModule,
    alert_id,
    finding_severity,
    finding_type,
    load_contract_abi,
    raise_for_errors,
    validate_monitored_section,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AlertStyle:
    title: str
    suffix: str
    include_addresses: bool


MONITOR_EVENT_STYLE = AlertStyle("Monitor Event", "MONITOR-EVENT", include_addresses=True)
ADMIN_EVENT_STYLE = AlertStyle("Admin Event", "ADMIN-EVENT", include_addresses=False)


@dataclass
class MonitoredContract:
    name: str
    address: str
    events: list[MonitorEntry]


@dataclass
class EventBotState:
    config: BotConfig
    style: AlertStyle
    contracts: list[MonitoredContract]


def create_alert(
    state: EventBotState,
    entry: MonitorEntry,
    contract: MonitoredContract,
    args: dict[str, Any],
    addresses: list[str],
) -> Finding:
    config = state.config
    description = f"The {entry.name} event was emitted by the {contract.name} contract"
    if entry.expression is not None:
        description += f" with condition met: {entry.expression.source}"

    return Finding(
        name=f"{config.protocol_name} {state.style.title}",
        description=description,
        alert_id=alert_id(config, state.style.suffix),
        type=finding_type(entry.type),
        severity=finding_severity(entry.severity),
        protocol=config.protocol_name,
        metadata={
            "contractName": contract.name,
            "contractAddress": contract.address,
            "eventName": entry.name,
            **extract_args(args),
        },
        addresses=tuple(addresses) if state.style.include_addresses else None,
    )


def validate_config(config: BotConfig, context: BotContext) -> list[str]:
    return validate_monitored_section(config, context, "events")


async def _initialize(config: BotConfig, context: BotContext, style: AlertStyle) -> EventBotState:
    raise_for_errors(validate_config(config, context))

    abis = {
        name: load_contract_abi(config, context, name, entry)
        for name, entry in config.contracts.items()
    }
    contracts = [
        MonitoredContract(
            name=name,
            address=entry["address"],
            events=resolve_entries("events", name, config.contracts, abis),
        )
        for name, entry in config.contracts.items()
    ]
    logger.info(
        "%s monitoring %d events across %d contracts",
        config.label,
        sum(len(c.events) for c in contracts),
        len(contracts),
    )
    return EventBotState(config=config, style=style, contracts=contracts)


async def initialize(config: BotConfig, context: BotContext) -> EventBotState:
    return await _initialize(config, context, MONITOR_EVENT_STYLE)


async def initialize_admin(config: BotConfig, context: BotContext) -> EventBotState:
    return await _initialize(config, context, ADMIN_EVENT_STYLE)


async def handle_transaction(state: EventBotState, event: TransactionEvent) -> list[Finding]:
    findings: list[Finding] = []
    addresses = list(event.addresses)

    for contract in state.contracts:
        for entry in contract.events:
            for log in event.filter_log(entry.fragment, contract.address):
                if entry.expression is not None and not evaluate_expression(
                    entry.expression, log.args, f"an {log.name} log"
                ):
                    continue
                findings.append(create_alert(state, entry, contract, log.args, addresses))
    return findings


MONITOR_EVENTS = BotModule(
    bot_type="monitor-events",
    initialize=initialize,
    validate_config=validate_config,
    handle_transaction=handle_transaction,
)

ADMIN_EVENTS = BotModule(
    bot_type="admin-events",
    initialize=initialize_admin,
    validate_config=validate_config,
    handle_transaction=handle_transaction,
)
