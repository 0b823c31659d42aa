from __future__ import annotations

import asyncio
from dataclasses import dataclass
from decimal import Decimal

from ..config import BotConfig
from ..events import BlockEvent
from ..expressions import is_numeric, to_decimal
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
)

WEI_PER_ETH = Decimal(10) ** 18
DEFAULT_MIN_INTERVAL_SECONDS = 86400


@dataclass
class AccountState:
    name: str
    address: str
    threshold_eth: Decimal
    type: str
    severity: str
    start_time: int = 0
    num_alerts_since_last_finding: int = 0

    @property
    def threshold_wei(self) -> int:
        return int(self.threshold_eth * WEI_PER_ETH)


@dataclass
class AccountBalanceState:
    config: BotConfig
    provider: object
    min_interval_seconds: int
    accounts: list[AccountState]


def create_alert(config: BotConfig, account: AccountState, balance: int) -> Finding:
    name = f"{config.protocol_name} Account Balance" if config.protocol_name else "Account Balance"
    return Finding(
        name=name,
        description=f"The {account.name} account has a balance below {account.threshold_eth} ETH",
        alert_id=alert_id(config, "LOW-ACCOUNT-BALANCE"),
        type=finding_type(account.type),
        severity=finding_severity(account.severity),
        protocol=config.protocol_name or None,
        metadata={
            "accountName": account.name,
            "accountAddress": account.address,
            "accountBalance": str(balance),
            "threshold": str(account.threshold_wei),
            "numAlertsSinceLastFinding": str(account.num_alerts_since_last_finding),
        },
    )


def validate_config(config: BotConfig, context: BotContext) -> list[str]:
    errors: list[str] = []
    if not config.developer_abbreviation.strip():
        errors.append("developerAbbreviation required")
    interval = config.get("alertMinimumIntervalSeconds", DEFAULT_MIN_INTERVAL_SECONDS)
    if not isinstance(interval, int) or isinstance(interval, bool) or interval < 0:
        errors.append("alertMinimumIntervalSeconds must be a non-negative integer")
    if not config.contracts:
        errors.append("contracts key required")
    for name, entry in config.contracts.items():
        address_errors = validate_contract_address(name, entry)
        if address_errors:
            errors.extend(address_errors)
            continue
        if not is_numeric(entry.get("thresholdEth", "")):
            errors.append(f"'{name}' thresholdEth must be numeric")
        errors.extend(validate_alert_settings(name, entry))
    return errors


async def initialize(config: BotConfig, context: BotContext) -> AccountBalanceState:
    raise_for_errors(validate_config(config, context))
    accounts = [
        AccountState(
            name=name,
            address=entry["address"],
            threshold_eth=to_decimal(entry["thresholdEth"]) or Decimal(0),
            type=entry["type"],
            severity=entry["severity"],
        )
        for name, entry in config.contracts.items()
    ]
    return AccountBalanceState(
        config=config,
        provider=context.provider,
        min_interval_seconds=config.get("alertMinimumIntervalSeconds", DEFAULT_MIN_INTERVAL_SECONDS),
        accounts=accounts,
    )


async def handle_block(state: AccountBalanceState, event: BlockEvent) -> list[Finding]:
    balances = await asyncio.gather(
        *(state.provider.get_balance(account.address) for account in state.accounts)
    )

    findings: list[Finding] = []
    timestamp = event.block.timestamp
    for account, balance in zip(state.accounts, balances):
        if balance >= account.threshold_wei:
            continue

        # Within the minimum interval only the suppressed-alert counter moves.
        if timestamp - account.start_time < state.min_interval_seconds:
            account.num_alerts_since_last_finding += 1
            continue

        findings.append(create_alert(state.config, account, balance))
        account.num_alerts_since_last_finding = 0
        account.start_time = timestamp
    return findings


ACCOUNT_BALANCE = BotModule(
    bot_type="account-balance",
    initialize=initialize,
    validate_config=validate_config,
    handle_block=handle_block,
)
