"""
Watches zero-argument numeric getters once per block.

Each (contract, variable) keeps a RollingWindow of past values. Once the window
holds numDataPoints samples, a new sample further than upperThresholdPercent
above (or lowerThresholdPercent below) the window average raises a finding.
The sample is pushed afterwards whether or not an alert fired.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from decimal import Decimal

from eth_abi import decode as abi_decode

from ..abi import canonical_type, function_selector, objects_from_abi
from ..config import BotConfig
from ..errors import ConfigurationError
from ..events import BlockEvent
from ..expressions import is_numeric, to_decimal
from ..rolling import RollingWindow, check_threshold, format_decimal
from ..types import Finding
from .base import (
    BotContext,
    BotModule,
    alert_id,
    finding_severity,
    finding_type,
    load_contract_abi,
    raise_for_errors,
    validate_alert_settings,
    validate_contract_address,
    validate_protocol_fields,
)

logger = logging.getLogger(__name__)


@dataclass
class VariableInfo:
    name: str
    contract_name: str
    contract_address: str
    selector: str
    output_types: list[str]
    type: str
    severity: str
    upper_threshold_percent: Decimal | None
    lower_threshold_percent: Decimal | None
    window: RollingWindow
    min_num_elements: int


@dataclass
class VariableMonitorState:
    config: BotConfig
    provider: object
    variables: list[VariableInfo]


@dataclass(frozen=True)
class ThresholdBreach:
    position: str
    limit: Decimal
    percent: Decimal


def create_alert(config: BotConfig, variable: VariableInfo, breach: ThresholdBreach) -> Finding:
    return Finding(
        name=f"{config.protocol_name} Contract Variable",
        description=(
            f"The {variable.name} variable value in the {variable.contract_name} contract had a"
            f" change in value over the {breach.position} threshold limit of"
            f" {format_decimal(breach.limit)} percent"
        ),
        alert_id=alert_id(config, "CONTRACT-VARIABLE"),
        type=finding_type(variable.type),
        severity=finding_severity(variable.severity),
        protocol=config.protocol_name,
        metadata={
            "contractName": variable.contract_name,
            "contractAddress": variable.contract_address,
            "variableName": variable.name,
            "thresholdPosition": breach.position,
            "thresholdPercentLimit": format_decimal(breach.limit),
            "actualPercentChange": format_decimal(breach.percent),
        },
    )


def evaluate_sample(variable: VariableInfo, value: Decimal) -> list[ThresholdBreach]:
    breaches: list[ThresholdBreach] = []
    window = variable.window

    if window.count() >= variable.min_num_elements:
        average = window.average()
        if variable.upper_threshold_percent is not None and value > average:
            percent = check_threshold(variable.upper_threshold_percent, value, window)
            if percent is not None:
                breaches.append(ThresholdBreach("upper", variable.upper_threshold_percent, percent))
        if variable.lower_threshold_percent is not None and value < average:
            percent = check_threshold(variable.lower_threshold_percent, value, window)
            if percent is not None:
                breaches.append(ThresholdBreach("lower", variable.lower_threshold_percent, percent))
        if average == 0 and value != 0:
            logger.warning(
                "%s.%s average is zero; percent change is undefined",
                variable.contract_name,
                variable.name,
            )

    window.push(value)
    return breaches


def _validate_variable(label: str, settings: object, objects: dict) -> list[str]:
    if not isinstance(settings, dict):
        return [f"{label}: settings must be an object"]
    errors: list[str] = []
    name = label.rsplit(".", 1)[-1]
    fragment = objects.get(name)
    if fragment is None:
        errors.append(f"{label}: no getter named {name} in ABI")
    elif fragment.get("inputs"):
        errors.append(f"{label}: getter must take no arguments")
    elif not fragment.get("outputs") or not canonical_type(fragment["outputs"][0]).startswith(("uint", "int")):
        errors.append(f"{label}: getter must return a number")

    upper = settings.get("upperThresholdPercent")
    lower = settings.get("lowerThresholdPercent")
    if upper is None and lower is None:
        errors.append(
            f"Either the upperThresholdPercent or lowerThresholdPercent for the variable {name} must be defined"
        )
    for key, value in (("upperThresholdPercent", upper), ("lowerThresholdPercent", lower)):
        if value is not None and not is_numeric(value):
            errors.append(f"{label}: {key} must be numeric")

    points = settings.get("numDataPoints", 1)
    if not isinstance(points, int) or isinstance(points, bool) or points < 1:
        errors.append(f"{label}: numDataPoints must be a positive integer")

    errors.extend(validate_alert_settings(label, settings))
    return errors


def validate_config(config: BotConfig, context: BotContext) -> list[str]:
    errors = validate_protocol_fields(config)
    if not config.contracts:
        errors.append("contracts key required")
    for name, entry in config.contracts.items():
        address_errors = validate_contract_address(name, entry)
        if address_errors:
            errors.extend(address_errors)
            continue
        try:
            abi = load_contract_abi(config, context, name, entry)
        except ConfigurationError as exc:
            errors.append(str(exc))
            continue
        variables = entry.get("variables")
        if not isinstance(variables, dict) or not variables:
            errors.append(f"'{name}' variables key required")
            continue
        objects = objects_from_abi(abi, "function")
        for variable_name, settings in variables.items():
            errors.extend(_validate_variable(f"{name}.{variable_name}", settings, objects))
    return errors


async def initialize(config: BotConfig, context: BotContext) -> VariableMonitorState:
    raise_for_errors(validate_config(config, context))

    variables: list[VariableInfo] = []
    for contract_name, entry in config.contracts.items():
        objects = objects_from_abi(load_contract_abi(config, context, contract_name, entry), "function")
        for variable_name, settings in entry["variables"].items():
            fragment = objects[variable_name]
            size = settings.get("numDataPoints", 1)
            upper = settings.get("upperThresholdPercent")
            lower = settings.get("lowerThresholdPercent")
            variables.append(
                VariableInfo(
                    name=variable_name,
                    contract_name=contract_name,
                    contract_address=entry["address"],
                    selector=function_selector(fragment),
                    output_types=[canonical_type(o) for o in fragment["outputs"]],
                    type=settings["type"],
                    severity=settings["severity"],
                    upper_threshold_percent=to_decimal(upper) if upper is not None else None,
                    lower_threshold_percent=to_decimal(lower) if lower is not None else None,
                    window=RollingWindow(size),
                    min_num_elements=size,
                )
            )
    return VariableMonitorState(config=config, provider=context.provider, variables=variables)


async def _read_variable(provider: object, variable: VariableInfo) -> Decimal:
    raw = await provider.call(variable.contract_address, variable.selector)
    payload = bytes.fromhex(raw[2:] if raw.startswith("0x") else raw)
    value = abi_decode(variable.output_types, payload)[0]
    return Decimal(value)


async def handle_block(state: VariableMonitorState, event: BlockEvent) -> list[Finding]:
    async def check(variable: VariableInfo) -> list[Finding]:
        value = await _read_variable(state.provider, variable)
        return [create_alert(state.config, variable, b) for b in evaluate_sample(variable, value)]

    results = await asyncio.gather(*(check(v) for v in state.variables))
    return [finding for batch in results for finding in batch]


CONTRACT_VARIABLE_MONITOR = BotModule(
    bot_type="contract-variable-monitor",
    initialize=initialize,
    validate_config=validate_config,
    handle_block=handle_block,
)
