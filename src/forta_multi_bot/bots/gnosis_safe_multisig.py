"""
Watches Gnosis Safe multisig wallets.

- Safe events are decoded with the ABI for the wallet's contract version,
  loaded from <abi_dir>/<bot name>/<version>/gnosis-safe.json
- Each block, the Ether balance and the balance of every ERC20 token the safe
  has sent or received are compared with the previous block
- Tokens are discovered from past Transfer logs at startup and from Transfer
  logs seen afterwards
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from eth_abi import decode as abi_decode
from eth_abi import encode as abi_encode

from ..abi import Fragment, event_topic, extract_args, function_selector
from ..config import BotConfig
from ..errors import ConfigurationError
from ..events import BlockEvent, TransactionEvent
from ..types import Finding, FindingSeverity, FindingType
from .base import (
    BotContext,
    BotModule,
    alert_id,
    raise_for_errors,
    validate_contract_address,
    validate_protocol_fields,
)

logger = logging.getLogger(__name__)

ETHER = "Ether"

ERC20_TRANSFER: Fragment = {
    "type": "event",
    "name": "Transfer",
    "anonymous": False,
    "inputs": [
        {"name": "from", "type": "address", "indexed": True},
        {"name": "to", "type": "address", "indexed": True},
        {"name": "value", "type": "uint256", "indexed": False},
    ],
}

ERC20_BALANCE_OF: Fragment = {
    "type": "function",
    "name": "balanceOf",
    "stateMutability": "view",
    "inputs": [{"name": "account", "type": "address"}],
    "outputs": [{"name": "", "type": "uint256"}],
}


@dataclass(frozen=True)
class SafeEventAlert:
    suffix: str
    describe: Callable[[dict[str, str]], str]
    fields: tuple[str, ...]


SAFE_EVENT_ALERTS: dict[str, SafeEventAlert] = {
    "AddedOwner": SafeEventAlert(
        "ADDED-OWNER", lambda a: f"Owner added to Gnosis-Safe MultiSig wallet: {a.get('owner')}", ("owner",)
    ),
    "RemovedOwner": SafeEventAlert(
        "REMOVED-OWNER", lambda a: f"Owner removed from Gnosis-Safe MultiSig wallet: {a.get('owner')}", ("owner",)
    ),
    "ChangedThreshold": SafeEventAlert(
        "CHANGED-THRESHOLD",
        lambda a: f"Number of required confirmation changed to {a.get('threshold', '')}",
        ("threshold",),
    ),
    "ApproveHash": SafeEventAlert(
        "APPROVE-HASH",
        lambda a: f"Hash {a.get('approvedHash')} marked as approved by owner {a.get('owner')}",
        ("owner", "approvedHash"),
    ),
    "ExecutionFailure": SafeEventAlert(
        "EXECUTION-FAILURE",
        lambda a: f"Failed to execute transaction with hash {a.get('txHash')}, payment {a.get('payment', '')}",
        ("txHash", "payment"),
    ),
    "ExecutionSuccess": SafeEventAlert(
        "EXECUTION-SUCCESS",
        lambda a: f"Succeeded executing transaction with hash {a.get('txHash')}, payment {a.get('payment', '')}",
        ("txHash", "payment"),
    ),
    "ExecutionFromModuleFailure": SafeEventAlert(
        "EXECUTION-FROM-MODULE-FAILURE",
        lambda a: f"Failed executing transaction using module: {a.get('module')}",
        ("module",),
    ),
    "ExecutionFromModuleSuccess": SafeEventAlert(
        "EXECUTION-FROM-MODULE-SUCCESS",
        lambda a: f"Succeeded executing transaction using module: {a.get('module')}",
        ("module",),
    ),
    "ExecutionFailed": SafeEventAlert(
        "EXECUTION-FAILED", lambda a: f"Failed to execute transaction with hash {a.get('txHash')}", ("txHash",)
    ),
    "EnabledModule": SafeEventAlert(
        "ENABLED-MODULE", lambda a: f"Module {a.get('module')} added to the whitelist", ("module",)
    ),
    "DisabledModule": SafeEventAlert(
        "DISABLED-MODULE", lambda a: f"Module {a.get('module')} removed from the whitelist", ("module",)
    ),
    "SignMsg": SafeEventAlert("SIGN-MSG", lambda a: f"Message signed, hash: {a.get('msgHash')}", ("msgHash",)),
    "ChangedMasterCopy": SafeEventAlert(
        "CHANGED-MASTER-COPY",
        lambda a: f"Migrated contract, master copy address: {a.get('masterCopy')}",
        ("masterCopy",),
    ),
    "ContractCreation": SafeEventAlert(
        "CONTRACT-CREATION",
        lambda a: f"New contract deployed at address {a.get('newContract')}",
        ("newContract",),
    ),
    "ChangedFallbackHandler": SafeEventAlert(
        "CHANGED-FALLBACK-HANDLER", lambda a: f"Fallback handler changed to {a.get('handler')}", ("handler",)
    ),
    "ChangedGuard": SafeEventAlert(
        "CHANGED-GUARD",
        lambda a: f"Guard that checks transactions before execution changed to {a.get('guard')}",
        ("guard",),
    ),
    "SafeReceived": SafeEventAlert(
        "SAFE-RECEIVED",
        lambda a: (
            "Safe received ether payments via fallback method."
            f"  Sender: {a.get('sender')}, Value: {a.get('value', '')}"
        ),
        ("sender", "value"),
    ),
    "SafeSetup": SafeEventAlert(
        "SAFE-SETUP",
        lambda a: f"Initialized storage of contract by {a.get('initiator')} with threshold {a.get('threshold', '')}",
        ("initiator", "owners", "threshold", "initializer", "fallbackHandler"),
    ),
}

_CORE_EVENTS = frozenset({"AddedOwner", "RemovedOwner", "ChangedThreshold", "EnabledModule", "DisabledModule"})
_V1_1_EVENTS = _CORE_EVENTS | {
    "ApproveHash",
    "ChangedMasterCopy",
    "ExecutionFailure",
    "ExecutionFromModuleFailure",
    "ExecutionFromModuleSuccess",
    "ExecutionSuccess",
    "SignMsg",
}

SAFE_EVENTS_BY_VERSION: dict[str, frozenset[str]] = {
    "v1.0.0": _CORE_EVENTS | {"ExecutionFailed", "ContractCreation"},
    "v1.1.1": _V1_1_EVENTS,
    "v1.2.0": _V1_1_EVENTS,
    "v1.3.0": (_V1_1_EVENTS - {"ChangedMasterCopy"})
    | {"ChangedFallbackHandler", "ChangedGuard", "SafeReceived", "SafeSetup"},
}


@dataclass
class SafeWallet:
    name: str
    address: str
    version: str
    events: list[Fragment]
    token_addresses: list[str] = field(default_factory=list)
    previous_balances: dict[str, int] = field(default_factory=dict)

    def track_token(self, token: str) -> None:
        token = token.lower()
        if token not in self.token_addresses:
            self.token_addresses.append(token)


@dataclass
class GnosisSafeState:
    config: BotConfig
    provider: Any
    safes: list[SafeWallet]


def safe_abi_file(version: str) -> str:
    return f"{version}/gnosis-safe.json"


def create_event_alert(config: BotConfig, safe: SafeWallet, event_name: str, args: dict[str, Any]) -> Finding | None:
    if event_name not in SAFE_EVENTS_BY_VERSION.get(safe.version, frozenset()):
        return None
    alert = SAFE_EVENT_ALERTS[event_name]
    values = extract_args(args)
    return Finding(
        name=f"{config.protocol_name} DAO Treasury MultiSig - {event_name}",
        description=alert.describe(values),
        alert_id=alert_id(config, f"DAO-MULTISIG-{alert.suffix}"),
        type=FindingType.Info,
        severity=FindingSeverity.Info,
        protocol=config.protocol_name,
        metadata={"address": safe.address, **{key: values.get(key, "") for key in alert.fields}},
    )


def create_balance_alert(
    config: BotConfig, safe: SafeWallet, asset: str, previous: int, current: int
) -> Finding:
    metadata = {"previousBalance": str(previous), "newBalance": str(current)}
    if asset == ETHER:
        label, suffix = "Ether", "ETH-BALANCE-CHANGE"
    else:
        label, suffix = "Token", "TOKEN-BALANCE-CHANGE"
        metadata["tokenAddress"] = asset
    return Finding(
        name=f"{config.protocol_name} DAO Treasury MultiSig - {label} Balance Changed",
        description=f"{label} balance of {safe.address} changed by {current - previous}",
        alert_id=alert_id(config, f"DAO-MULTISIG-{suffix}"),
        type=FindingType.Info,
        severity=FindingSeverity.Info,
        protocol=config.protocol_name,
        metadata=metadata,
    )


def validate_config(config: BotConfig, context: BotContext) -> list[str]:
    errors = validate_protocol_fields(config)
    if not config.contracts:
        errors.append("contracts key required")
    for name, entry in config.contracts.items():
        address_errors = validate_contract_address(name, entry)
        if address_errors:
            errors.extend(address_errors)
            continue
        version = entry.get("version")
        if version not in SAFE_EVENTS_BY_VERSION:
            errors.append(
                f"'{name}' version must be one of {', '.join(SAFE_EVENTS_BY_VERSION)}, got {version!r}"
            )
            continue
        try:
            abi = context.abis.get_abi(config.name, safe_abi_file(version))
        except ConfigurationError as exc:
            errors.append(str(exc))
            continue
        if not any(item.get("type") == "event" for item in abi):
            errors.append(f"'{name}' gnosis-safe abi for {version} declares no events")
    return errors


async def _past_token_addresses(provider: Any, safe_address: str) -> list[str]:
    try:
        block_number = await provider.get_block_number()
        logs = await provider.get_logs(
            {
                "fromBlock": 0,
                "toBlock": block_number,
                "topics": [event_topic(ERC20_TRANSFER), None, "0x" + abi_encode(["address"], [safe_address]).hex()],
            }
        )
    except Exception as exc:
        logger.warning("Could not load past token transfers for %s: %s", safe_address, exc)
        return []
    return list(dict.fromkeys(str(log["address"]).lower() for log in logs if log.get("address")))


async def initialize(config: BotConfig, context: BotContext) -> GnosisSafeState:
    raise_for_errors(validate_config(config, context))

    safes = [
        SafeWallet(
            name=name,
            address=entry["address"].lower(),
            version=entry["version"],
            events=[
                item
                for item in context.abis.get_abi(config.name, safe_abi_file(entry["version"]))
                if item.get("type") == "event"
            ],
        )
        for name, entry in config.contracts.items()
    ]
    known = await asyncio.gather(*(_past_token_addresses(context.provider, safe.address) for safe in safes))
    for safe, tokens in zip(safes, known):
        for token in tokens:
            safe.track_token(token)
    return GnosisSafeState(config=config, provider=context.provider, safes=safes)


async def handle_transaction(state: GnosisSafeState, event: TransactionEvent) -> list[Finding]:
    transfers = event.filter_log(ERC20_TRANSFER)
    findings: list[Finding] = []
    for safe in state.safes:
        for log in transfers:
            if safe.address in (str(log.args["from"]).lower(), str(log.args["to"]).lower()):
                safe.track_token(log.address)

        for log in event.filter_log(safe.events, safe.address):
            finding = create_event_alert(state.config, safe, log.name, log.args)
            if finding is not None:
                findings.append(finding)
    return findings


async def _token_balance(provider: Any, token: str, owner: str) -> int:
    data = function_selector(ERC20_BALANCE_OF) + abi_encode(["address"], [owner]).hex()
    try:
        raw = await provider.call(token, data)
        return abi_decode(["uint256"], bytes.fromhex(raw[2:] if raw.startswith("0x") else raw))[0]
    except Exception as exc:
        # Tokens that cannot report a balance count as zero.
        logger.debug("balanceOf(%s) on %s failed: %s", owner, token, exc)
        return 0


async def _check_safe(state: GnosisSafeState, safe: SafeWallet) -> list[Finding]:
    ether = await state.provider.get_balance(safe.address)
    tokens = await asyncio.gather(
        *(_token_balance(state.provider, token, safe.address) for token in safe.token_addresses)
    )
    current = {ETHER: ether, **dict(zip(safe.token_addresses, tokens))}

    findings = [
        create_balance_alert(state.config, safe, asset, previous, current[asset])
        for asset, previous in safe.previous_balances.items()
        if asset in current and current[asset] != previous
    ]
    safe.previous_balances.update(current)
    return findings


async def handle_block(state: GnosisSafeState, event: BlockEvent) -> list[Finding]:
    batches = await asyncio.gather(*(_check_safe(state, safe) for safe in state.safes))
    return [finding for batch in batches for finding in batch]


GNOSIS_SAFE_MULTISIG = BotModule(
    bot_type="gnosis-safe-multisig",
    initialize=initialize,
    validate_config=validate_config,
    handle_transaction=handle_transaction,
    handle_block=handle_block,
)
