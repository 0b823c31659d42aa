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

TORNADO_CASH_ADDRESSES = [
    "0x722122dF12D4e14e13Ac3b6895a86e84145b6967",
]

TORNADO_PROXY_ABI = [
    {
        "type": "function",
        "name": "deposit",
        "inputs": [
            {"name": "_tornado", "type": "address"},
            {"name": "_commitment", "type": "bytes32"},
            {"name": "_encryptedNote", "type": "bytes"},
        ],
    },
    {
        "type": "function",
        "name": "withdraw",
        "inputs": [
            {"name": "_tornado", "type": "address"},
            {"name": "_proof", "type": "bytes"},
            {"name": "_root", "type": "bytes32"},
            {"name": "_nullifierHash", "type": "bytes32"},
            {"name": "_recipient", "type": "address"},
            {"name": "_relayer", "type": "address"},
            {"name": "_fee", "type": "uint256"},
            {"name": "_refund", "type": "uint256"},
        ],
    },
]


@dataclass
class SuspiciousAddressTracker:
    observation_interval_in_blocks: int
    suspicious: dict[str, int] = field(default_factory=dict)

    def observe(self, address: str, block_number: int) -> None:
        # Re-observation restarts the address's timer.
        self.suspicious[address.lower()] = block_number

    def prune(self, block_number: int) -> None:
        self.suspicious = {
            address: added
            for address, added in self.suspicious.items()
            if block_number - added <= self.observation_interval_in_blocks
        }

    def addresses(self) -> list[str]:
        return list(self.suspicious)


@dataclass(frozen=True)
class MonitoredAddress:
    name: str
    address: str
    type: str
    severity: str


@dataclass
class TornadoCashState:
    config: BotConfig
    monitored: list[MonitoredAddress]
    tracker: SuspiciousAddressTracker


def create_alert(config: BotConfig, monitored: MonitoredAddress, suspicious_address: str) -> Finding:
    return Finding(
        name=f"{config.protocol_name} Tornado Cash Monitor",
        description=(
            f"The {monitored.name} address ({monitored.address}) was involved in a transaction"
            f" with an address {suspicious_address} that has previously interacted with Tornado Cash"
        ),
        alert_id=alert_id(config, "TORNADO-CASH-MONITOR"),
        type=finding_type(monitored.type),
        severity=finding_severity(monitored.severity),
        protocol=config.protocol_name,
        metadata={
            "monitoredAddress": monitored.address,
            "name": monitored.name,
            "suspiciousAddress": suspicious_address,
            "tornadoCashContractAddresses": ",".join(TORNADO_CASH_ADDRESSES),
        },
    )


def validate_config(config: BotConfig, context: BotContext) -> list[str]:
    errors = validate_protocol_fields(config)
    interval = config.get("observationIntervalInBlocks")
    if not isinstance(interval, int) or isinstance(interval, bool) or interval < 0:
        errors.append("observationIntervalInBlocks key required")
    if not config.contracts:
        errors.append("contracts key required")
    for name, entry in config.contracts.items():
        address_errors = validate_contract_address(name, entry)
        if address_errors:
            errors.extend(address_errors)
            continue
        errors.extend(validate_alert_settings(f"{name}.tornado", entry.get("tornado")))
    return errors

async def initialize(config: BotConfig, context: BotContext) -> TornadoCashState:
    raise_for_errors(validate_config(config, context))
    monitored = [
        MonitoredAddress(
            name=name,
            address=entry["address"],
            type=entry["tornado"]["type"],
            severity=entry["tornado"]["severity"],
        )
        for name, entry in config.contracts.items()
    ]
    tracker = SuspiciousAddressTracker(config.get("observationIntervalInBlocks"))
    return TornadoCashState(config=config, monitored=monitored, tracker=tracker)

async def handle_transaction(state: TornadoCashState, event: TransactionEvent) -> list[Finding]:
    for tornado_address in TORNADO_CASH_ADDRESSES:
        if event.filter_function(TORNADO_PROXY_ABI, tornado_address):
            state.tracker.observe(event.from_, event.block_number)

    state.tracker.prune(event.block_number)

    findings: list[Finding] = []
    for suspicious_address in state.tracker.addresses():
        if not event.involves(suspicious_address):
            continue
        for monitored in state.monitored:
            if event.involves(monitored.address):
                findings.append(create_alert(state.config, monitored, suspicious_address))
    return findings


TORNADO_CASH_MONITOR = BotModule(
    bot_type="tornado-cash-monitor",
    initialize=initialize,
    validate_config=validate_config,
    handle_transaction=handle_transaction,
)
