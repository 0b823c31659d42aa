from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from ..abi import AbiRegistry, Fragment, objects_from_abi
from ..config import BotConfig
from ..errors import ConfigurationError, ConfigValidationFailed
from ..expressions import is_address, parse_expression
from ..events import BlockEvent, TransactionEvent
from ..types import Finding, FindingSeverity, FindingType


@dataclass
class BotContext:
    provider: Any
    abis: AbiRegistry


@dataclass(frozen=True)
class BotModule:
    bot_type: str
    initialize: Callable[[BotConfig, BotContext], Awaitable[Any]]
    validate_config: Callable[[BotConfig, BotContext], list[str]] | None = None
    handle_transaction: Callable[[Any, TransactionEvent], Awaitable[list[Finding]]] | None = None
    handle_block: Callable[[Any, BlockEvent], Awaitable[list[Finding]]] | None = None


def alert_id(config: BotConfig, suffix: str) -> str:
    if config.protocol_abbreviation:
        return f"{config.developer_abbreviation}-{config.protocol_abbreviation}-{suffix}"
    return f"{config.developer_abbreviation}-{suffix}"


def finding_type(name: str) -> FindingType:
    return FindingType[name]


def finding_severity(name: str) -> FindingSeverity:
    return FindingSeverity[name]


def validate_protocol_fields(config: BotConfig) -> list[str]:
    errors: list[str] = []
    if not config.developer_abbreviation.strip():
        errors.append("developerAbbreviation required")
    if not config.protocol_name.strip():
        errors.append("protocolName required")
    if not config.protocol_abbreviation.strip():
        errors.append("protocolAbbreviation required")
    return errors


def validate_alert_settings(label: str, settings: Any) -> list[str]:
    if not isinstance(settings, dict):
        return [f"{label}: type and severity required"]
    errors: list[str] = []
    if settings.get("type") not in FindingType.__members__:
        errors.append(f"{label}: invalid finding type {settings.get('type')!r}")
    if settings.get("severity") not in FindingSeverity.__members__:
        errors.append(f"{label}: invalid finding severity {settings.get('severity')!r}")
    return errors


def validate_contract_address(name: str, entry: Any) -> list[str]:
    if not isinstance(entry, dict) or not entry:
        return [f"contract keys in contracts required for '{name}'"]
    if entry.get("address") is None:
        return [f"No address found in configuration file for '{name}'"]
    if not is_address(entry.get("address")):
        return [f"invalid address for '{name}': {entry.get('address')}"]
    return []


def load_contract_abi(config: BotConfig, context: BotContext, name: str, entry: dict[str, Any]) -> list[Fragment]:
    abi_file = entry.get("abiFile")
    if not abi_file:
        raise ConfigurationError(f"No ABI file found in configuration file for '{name}'")
    return context.abis.get_abi(config.name, abi_file)


def validate_monitored_section(config: BotConfig, context: BotContext, section: str) -> list[str]:
    """Checks an `events` or `functions` section against each contract's ABI."""
    kind = "event" if section == "events" else "function"
    errors = validate_protocol_fields(config)
    if not config.contracts:
        errors.append("contracts key required")
        return errors

    for name, entry in config.contracts.items():
        address_errors = validate_contract_address(name, entry)
        if address_errors:
            errors.extend(address_errors)
            continue

        proxy = entry.get("proxy")
        if proxy is not None and proxy not in config.contracts:
            errors.append(f"'{name}' proxy target {proxy} is not a configured contract")

        try:
            abi = load_contract_abi(config, context, name, entry)
        except ConfigurationError as exc:
            errors.append(str(exc))
            continue

        objects = objects_from_abi(abi, kind)
        for item_name, settings in (entry.get(section) or {}).items():
            label = f"{name}.{item_name}"
            if item_name not in objects:
                errors.append(f"{label}: invalid {kind}")
                continue

            expression = settings.get("expression") if isinstance(settings, dict) else None
            if expression is not None:
                try:
                    parsed = parse_expression(expression)
                except ConfigurationError as exc:
                    errors.append(f"{label}: {exc}")
                else:
                    argument_names = [i.get("name") for i in objects[item_name].get("inputs", [])]
                    if parsed.field_name not in argument_names:
                        errors.append(f"{label}: invalid argument {parsed.field_name}")

            errors.extend(validate_alert_settings(label, settings))
    return errors


def raise_for_errors(errors: list[str]) -> None:
    if errors:
        raise ConfigValidationFailed(errors)
