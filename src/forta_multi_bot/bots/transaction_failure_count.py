from __future__ import annotations

from dataclasses import dataclass, field

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


@dataclass
class FailureWindow:
    """Failed transaction hashes mapped to the block they were seen in."""

    block_window: int
    limit: int
    failed_txs: dict[str, int] = field(default_factory=dict)

    def record(self, tx_hash: str, block_number: int) -> list[str] | None:
        self.failed_txs[tx_hash] = block_number
        cutoff = block_number - self.block_window
        self.failed_txs = {h: b for h, b in self.failed_txs.items() if b >= cutoff}

        if len(self.failed_txs) < self.limit:
            return None
        hashes = list(self.failed_txs)
        self.failed_txs = {}
        return hashes


@dataclass
class WatchedContract:
    name: str
    address: str
    type: str
    severity: str
    window: FailureWindow


@dataclass
class FailureCountState:
    config: BotConfig
    provider: object
    block_window: int
    contracts: list[WatchedContract]


def create_alert(state: FailureCountState, contract: WatchedContract, failed_txs: list[str]) -> Finding:
    config = state.config
    return Finding(
        name=f"{config.protocol_name} Transaction Failure Count",
        description=(
            f"{len(failed_txs)} transactions sent to {contract.address} have failed in the past"
            f" {state.block_window} blocks"
        ),
        alert_id=alert_id(config, "FAILED-TRANSACTIONS"),
        type=finding_type(contract.type),
        severity=finding_severity(contract.severity),
        protocol=config.protocol_name,
        metadata={
            "contractName": contract.name,
            "contractAddress": contract.address,
            "txFailureThreshold": str(contract.window.limit),
            "failedTxs": ",".join(failed_txs),
        },
    )


def _positive_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def validate_config(config: BotConfig, context: BotContext) -> list[str]:
    errors = validate_protocol_fields(config)
    if not _positive_int(config.get("blockWindow")):
        errors.append("blockWindow must be a positive integer")
    if not config.contracts:
        errors.append("contracts key required")
    for name, entry in config.contracts.items():
        address_errors = validate_contract_address(name, entry)
        if address_errors:
            errors.extend(address_errors)
            continue
        if not _positive_int(entry.get("transactionFailuresLimit")):
            errors.append(f"'{name}' transactionFailuresLimit must be a positive integer")
        errors.extend(validate_alert_settings(name, entry))
    return errors


async def initialize(config: BotConfig, context: BotContext) -> FailureCountState:
    raise_for_errors(validate_config(config, context))
    block_window = config.get("blockWindow")
    contracts = [
        WatchedContract(
            name=name,
            address=entry["address"].lower(),
            type=entry["type"],
            severity=entry["severity"],
            window=FailureWindow(block_window=block_window, limit=entry["transactionFailuresLimit"]),
        )
        for name, entry in config.contracts.items()
    ]
    return FailureCountState(
        config=config, provider=context.provider, block_window=block_window, contracts=contracts
    )


async def _succeeded(state: FailureCountState, event: TransactionEvent) -> bool:
    if event.receipt is not None:
        return event.receipt.status
    receipt = await state.provider.get_transaction_receipt(event.hash)
    return int(str(receipt.get("status", "0x0")), 16) == 1


async def handle_transaction(state: FailureCountState, event: TransactionEvent) -> list[Finding]:
    to = (event.to or "").lower()
    targets = [c for c in state.contracts if c.address == to]
    if not targets or await _succeeded(state, event):
        return []

    findings: list[Finding] = []
    for contract in targets:
        failed = contract.window.record(event.hash, event.block_number)
        if failed is not None:
            findings.append(create_alert(state, contract, failed))
    return findings


TRANSACTION_FAILURE_COUNT = BotModule(
    bot_type="transaction-failure-count",
    initialize=initialize,
    validate_config=validate_config,
    handle_transaction=handle_transaction,
)
