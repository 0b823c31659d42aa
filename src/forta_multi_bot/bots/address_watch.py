from __future__ import annotations

from dataclasses import dataclass

from ..config import BotConfig
from ..events import TransactionEvent
from ..types import Finding
from .base import (
    BotContext,
    BotModule,
    alert_id,
    finding_severity,
    finding_type,
    raise_for_errors,
    validate_alert_settings,
    validate_contract_address,
    validate_protocol_fields,
)


@dataclass(frozen=True)
class WatchedAddress:
    name: str
    address: str
    type: str
    severity: str


@dataclass
class AddressWatchState:
    config: BotConfig
    watched: list[WatchedAddress]


def create_alert(config: BotConfig, watched: WatchedAddress) -> Finding:
    return Finding(
        name=f"{config.protocol_name} Address Watch",
        description=f"Address {watched.address} ({watched.name}) was involved in a transaction",
        alert_id=alert_id(config, "ADDRESS-WATCH"),
        type=finding_type(watched.type),
        severity=finding_severity(watched.severity),
        protocol=config.protocol_name,
        metadata={"contractName": watched.name, "contractAddress": watched.address},
    )


def validate_config(config: BotConfig, context: BotContext) -> list[str]:
    errors = validate_protocol_fields(config)
    if not config.contracts:
        errors.append("contracts key required")
    for key, entry in config.contracts.items():
        address_errors = validate_contract_address(key, entry)
        if address_errors:
            errors.extend(address_errors)
            continue
        name = entry.get("name", key)
        if not isinstance(name, str) or not name.strip():
            errors.append(f"Name field needs to be filled in configuration file for '{key}'")
        errors.extend(validate_alert_settings(f"{key}.watch", entry.get("watch")))
    return errors


async def initialize(config: BotConfig, context: BotContext) -> AddressWatchState:
    raise_for_errors(validate_config(config, context))
    watched = [
        WatchedAddress(
            name=entry.get("name", key),
            address=entry["address"],
            type=entry["watch"]["type"],
            severity=entry["watch"]["severity"],
        )
        for key, entry in config.contracts.items()
    ]
    return AddressWatchState(config=config, watched=watched)


async def handle_transaction(state: AddressWatchState, event: TransactionEvent) -> list[Finding]:
    return [create_alert(state.config, w) for w in state.watched if event.involves(w.address)]


ADDRESS_WATCH = BotModule(
    bot_type="address-watch",
    initialize=initialize,
    validate_config=validate_config,
    handle_transaction=handle_transaction,
)
