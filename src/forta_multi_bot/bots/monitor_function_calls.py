from __future__ import annotations

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


@dataclass
class CallContract:
    name: str
    address: str
    functions: list[MonitorEntry]


@dataclass
class FunctionCallState:
    config: BotConfig
    contracts: list[CallContract]


def create_alert(
    config: BotConfig, entry: MonitorEntry, contract: CallContract, args: dict[str, Any]
) -> Finding:
    description = f"The {entry.name} function was invoked in the {contract.name} contract"
    if entry.expression is not None:
        description += f", condition met: {entry.expression.source}"

    return Finding(
        name=f"{config.protocol_name} Function Call",
        description=description,
        alert_id=alert_id(config, "FUNCTION-CALL"),
        type=finding_type(entry.type),
        severity=finding_severity(entry.severity),
        protocol=config.protocol_name,
        metadata={
            "contractName": contract.name,
            "contractAddress": contract.address,
            "functionName": entry.name,
            **extract_args(args),
        },
    )


def validate_config(config: BotConfig, context: BotContext) -> list[str]:
    return validate_monitored_section(config, context, "functions")


async def initialize(config: BotConfig, context: BotContext) -> FunctionCallState:
    raise_for_errors(validate_config(config, context))

    abis = {
        name: load_contract_abi(config, context, name, entry)
        for name, entry in config.contracts.items()
    }
    contracts = [
        CallContract(
            name=name,
            address=entry["address"],
            functions=resolve_entries("functions", name, config.contracts, abis),
        )
        for name, entry in config.contracts.items()
    ]
    return FunctionCallState(config=config, contracts=contracts)


async def handle_transaction(state: FunctionCallState, event: TransactionEvent) -> list[Finding]:
    findings: list[Finding] = []
    for contract in state.contracts:
        for entry in contract.functions:
            # One fragment per call keeps results aligned with the entry's expression.
            for call in event.filter_function(entry.fragment, contract.address):
                if entry.expression is not None and not evaluate_expression(
                    entry.expression, call.args, f"a {call.name} call"
                ):
                    continue
                findings.append(create_alert(state.config, entry, contract, call.args))
    return findings


MONITOR_FUNCTION_CALLS = BotModule(
    bot_type="monitor-function-calls",
    initialize=initialize,
    validate_config=validate_config,
    handle_transaction=handle_transaction,
)
