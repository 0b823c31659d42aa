from __future__ import annotations

import asyncio
import logging
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

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InteractionWatch:
    name: str
    address: str
    threshold_block_count: int
    threshold_transaction_count: int
    filtered_addresses: frozenset[str]
    type: str
    severity: str


@dataclass
class NewContractInteractionState:
    config: BotConfig
    provider: object
    watches: list[InteractionWatch]


def create_contract_interaction_alert(
    config: BotConfig, watch: InteractionWatch, interaction_address: str
) -> Finding:
    return Finding(
        name=f"{config.protocol_name} New Contract Interaction",
        description=f"The {watch.name} contract interacted with a new contract {interaction_address}",
        alert_id=alert_id(config, "NEW-CONTRACT-INTERACTION"),
        type=finding_type(watch.type),
        severity=finding_severity(watch.severity),
        protocol=config.protocol_name,
        metadata={
            "contractName": watch.name,
            "contractAddress": watch.address,
            "interactionAddress": interaction_address,
        },
    )


def create_eoa_interaction_alert(
    config: BotConfig, watch: InteractionWatch, interaction_address: str, transaction_count: int
) -> Finding:
    return Finding(
        name=f"{config.protocol_name} New EOA Interaction",
        description=f"The {watch.name} contract interacted with a new EOA {interaction_address}",
        alert_id=alert_id(config, "NEW-EOA-INTERACTION"),
        type=finding_type(watch.type),
        severity=finding_severity(watch.severity),
        protocol=config.protocol_name,
        metadata={
            "contractName": watch.name,
            "contractAddress": watch.address,
            "interactionAddress": interaction_address,
            "transactionCount": str(transaction_count),
        },
    )


def _non_negative_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


def validate_config(config: BotConfig, context: BotContext) -> list[str]:
    errors = validate_protocol_fields(config)
    if not config.contracts:
        errors.append("contracts key required")
    for name, entry in config.contracts.items():
        address_errors = validate_contract_address(name, entry)
        if address_errors:
            errors.extend(address_errors)
            continue
        for key in ("thresholdBlockCount", "thresholdTransactionCount"):
            if not _non_negative_int(entry.get(key)):
                errors.append(f"'{name}' {key} must be a non-negative integer")
        if not isinstance(entry.get("filteredAddresses", []), list):
            errors.append(f"'{name}' filteredAddresses must be a list")
        errors.extend(validate_alert_settings(name, entry))
    return errors


async def initialize(config: BotConfig, context: BotContext) -> NewContractInteractionState:
    raise_for_errors(validate_config(config, context))
    watches = [
        InteractionWatch(
            name=name,
            address=entry["address"].lower(),
            threshold_block_count=entry["thresholdBlockCount"],
            threshold_transaction_count=entry["thresholdTransactionCount"],
            filtered_addresses=frozenset(a.lower() for a in entry.get("filteredAddresses", [])),
            type=entry["type"],
            severity=entry["severity"],
        )
        for name, entry in config.contracts.items()
    ]
    return NewContractInteractionState(config=config, provider=context.provider, watches=watches)


async def _best_effort(label: str, coro):
    try:
        return await coro
    except Exception as exc:
        logger.debug("%s lookup failed: %s", label, exc)
        return None


async def _check_watch(
    state: NewContractInteractionState, watch: InteractionWatch, event: TransactionEvent
) -> list[Finding]:
    provider = state.provider
    exclusions = watch.filtered_addresses | {watch.address}
    candidates = [a for a in event.addresses if a not in exclusions]

    codes = await asyncio.gather(
        *(_best_effort(f"getCode {a}", provider.get_code(a)) for a in candidates)
    )
    contracts = {a: code for a, code in zip(candidates, codes) if code not in (None, "0x")}
    eoas = [a for a, code in zip(candidates, codes) if code == "0x"]

    findings: list[Finding] = []
    counts = await asyncio.gather(
        *(_best_effort(f"getTransactionCount {a}", provider.get_transaction_count(a)) for a in eoas)
    )
    for eoa, count in zip(eoas, counts):
        if count is not None and count < watch.threshold_transaction_count:
            findings.append(create_eoa_interaction_alert(state.config, watch, eoa, count))

    past_block = max(event.block_number - watch.threshold_block_count, 0)
    past_codes = await asyncio.gather(
        *(_best_effort(f"getCode {a}@{past_block}", provider.get_code(a, past_block)) for a in contracts)
    )
    for address, past_code in zip(contracts, past_codes):
        # A contract whose code differs from N blocks ago was deployed since then.
        if past_code is not None and past_code != contracts[address]:
            findings.append(create_contract_interaction_alert(state.config, watch, address))
    return findings


async def handle_transaction(state: NewContractInteractionState, event: TransactionEvent) -> list[Finding]:
    to = (event.to or "").lower()
    batches = await asyncio.gather(
        *(_check_watch(state, watch, event) for watch in state.watches if watch.address == to)
    )
    return [finding for batch in batches for finding in batch]


NEW_CONTRACT_INTERACTION = BotModule(
    bot_type="new-contract-interaction",
    initialize=initialize,
    validate_config=validate_config,
    handle_transaction=handle_transaction,
)
