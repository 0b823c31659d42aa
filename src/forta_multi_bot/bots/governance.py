"""
Alerts on OpenZeppelin-style Governor activity.

Every event in the configured governor ABI is matched at the contract address;
the ones below produce an Info finding. The ABI must at least declare the
proposal lifecycle events in MINIMUM_EVENTS.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from ..abi import Fragment, extract_args
from ..config import BotConfig
from ..errors import ConfigurationError
from ..events import TransactionEvent
from ..types import Finding, FindingSeverity, FindingType
from .base import (
    BotContext,
    BotModule,
    alert_id,
    load_contract_abi,
    raise_for_errors,
    validate_contract_address,
    validate_protocol_fields,
)

logger = logging.getLogger(__name__)

MINIMUM_EVENTS = ("ProposalCreated", "VoteCast", "ProposalCanceled", "ProposalExecuted")

SUPPORT_LABELS = {"0": "against", "1": "in support of", "2": "abstaining from"}


@dataclass(frozen=True)
class GovernanceAlert:
    title: str
    suffix: str
    describe: Callable[[dict[str, str]], str]
    metadata: Callable[[dict[str, str]], dict[str, str]]


def _proposal_metadata(args: dict[str, str]) -> dict[str, str]:
    return {
        "proposalId": args.get("proposalId", ""),
        "proposer": args.get("proposer", ""),
        "targets": args.get("targets", ""),
        "values": args.get("values", ""),
        "signatures": args.get("signatures", ""),
        "calldatas": args.get("calldatas", ""),
        # OpenZeppelin 5 renamed startBlock/endBlock to voteStart/voteEnd.
        "startBlock": args.get("startBlock", args.get("voteStart", "")),
        "endBlock": args.get("endBlock", args.get("voteEnd", "")),
        "description": args.get("description", ""),
    }


def _describe_vote(args: dict[str, str]) -> str:
    support = args.get("support", "")
    label = SUPPORT_LABELS.get(support, f'with unknown support "{support}" for')
    return f"Vote cast with weight {args.get('weight', '')} {label} proposal {args.get('proposalId', '')}"


def _state(state: str) -> Callable[[dict[str, str]], dict[str, str]]:
    return lambda args: {"proposalId": args.get("proposalId", ""), "state": state}


def _change(old_key: str, new_key: str, old_label: str, new_label: str) -> Callable[[dict[str, str]], dict[str, str]]:
    return lambda args: {old_label: args.get(old_key, ""), new_label: args.get(new_key, "")}


GOVERNANCE_ALERTS: dict[str, GovernanceAlert] = {
    "ProposalCreated": GovernanceAlert(
        "Governance Proposal Created",
        "PROPOSAL-CREATED",
        lambda a: f"Governance Proposal {a.get('proposalId', '')} was just created",
        _proposal_metadata,
    ),
    "VoteCast": GovernanceAlert(
        "Governance Proposal Vote Cast",
        "VOTE-CAST",
        _describe_vote,
        lambda a: {"voter": a.get("voter", ""), "weight": a.get("weight", ""), "reason": a.get("reason", "")},
    ),
    "ProposalCanceled": GovernanceAlert(
        "Governance Proposal Canceled",
        "GOVERNANCE-PROPOSAL-CANCELED",
        lambda a: f"Governance proposal {a.get('proposalId', '')} has been canceled",
        _state("canceled"),
    ),
    "ProposalExecuted": GovernanceAlert(
        "Governance Proposal Executed",
        "GOVERNANCE-PROPOSAL-EXECUTED",
        lambda a: f"Governance proposal {a.get('proposalId', '')} has been executed",
        _state("executed"),
    ),
    "ProposalQueued": GovernanceAlert(
        "Governance Proposal Queued",
        "GOVERNANCE-PROPOSAL-QUEUED",
        lambda a: f"Governance Proposal {a.get('proposalId', '')} has been queued",
        lambda a: {**_state("queued")(a), "eta": a.get("eta", a.get("etaSeconds", ""))},
    ),
    "QuorumNumeratorUpdated": GovernanceAlert(
        "Governance Quorum Numerator Updated",
        "GOVERNANCE-QUORUM-NUMERATOR-UPDATED",
        lambda a: (
            f"Quorum numerator updated from {a.get('oldQuorumNumerator', '')}"
            f" to {a.get('newQuorumNumerator', '')}"
        ),
        _change("oldQuorumNumerator", "newQuorumNumerator", "oldNumerator", "newNumerator"),
    ),
    "TimelockChange": GovernanceAlert(
        "Governance Timelock Address Change",
        "GOVERNANCE-TIMELOCK-ADDRESS-CHANGED",
        lambda a: f"Timelock address changed from {a.get('oldTimelock', '')} to {a.get('newTimelock', '')}",
        _change("oldTimelock", "newTimelock", "oldTimelockAddress", "newTimelockAddress"),
    ),
    "VotingDelaySet": GovernanceAlert(
        "Governance Voting Delay Set",
        "GOVERNANCE-VOTING-DELAY-SET",
        lambda a: f"Voting delay change from {a.get('oldVotingDelay', '')} to {a.get('newVotingDelay', '')}",
        _change("oldVotingDelay", "newVotingDelay", "oldVotingDelay", "newVotingDelay"),
    ),
    "VotingPeriodSet": GovernanceAlert(
        "Governance Voting Period Set",
        "GOVERNANCE-VOTING-PERIOD-SET",
        lambda a: f"Voting period change from {a.get('oldVotingPeriod', '')} to {a.get('newVotingPeriod', '')}",
        _change("oldVotingPeriod", "newVotingPeriod", "oldVotingPeriod", "newVotingPeriod"),
    ),
    "ProposalThresholdSet": GovernanceAlert(
        "Governance Proposal Threshold Set",
        "GOVERNANCE-PROPOSAL-THRESHOLD-SET",
        lambda a: (
            f"Proposal threshold change from {a.get('oldProposalThreshold', '')}"
            f" to {a.get('newProposalThreshold', '')}"
        ),
        _change("oldProposalThreshold", "newProposalThreshold", "oldThreshold", "newThreshold"),
    ),
}


@dataclass
class GovernorContract:
    name: str
    address: str
    events: list[Fragment]


@dataclass
class GovernanceState:
    config: BotConfig
    contracts: list[GovernorContract]


def create_alert(
    config: BotConfig, event_name: str, address: str, args: dict[str, Any], addresses: list[str]
) -> Finding | None:
    alert = GOVERNANCE_ALERTS.get(event_name)
    if alert is None:
        return None
    values = extract_args(args)
    return Finding(
        name=f"{config.protocol_name} {alert.title}",
        description=alert.describe(values),
        alert_id=alert_id(config, alert.suffix),
        type=FindingType.Info,
        severity=FindingSeverity.Info,
        protocol=config.protocol_name,
        metadata={"address": address, **alert.metadata(values)},
        addresses=tuple(addresses),
    )


def _event_fragments(abi: list[Fragment]) -> list[Fragment]:
    return [item for item in abi if item.get("type") == "event" and item.get("name")]


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
        declared = {item["name"] for item in _event_fragments(abi)}
        for event_name in MINIMUM_EVENTS:
            if event_name not in declared:
                errors.append(f"'{name}' ABI does not contain minimum supported event: {event_name}")
    return errors


async def initialize(config: BotConfig, context: BotContext) -> GovernanceState:
    raise_for_errors(validate_config(config, context))
    contracts = [
        GovernorContract(
            name=name,
            address=entry["address"],
            events=_event_fragments(load_contract_abi(config, context, name, entry)),
        )
        for name, entry in config.contracts.items()
    ]
    logger.info("%s watching %d governor contracts", config.label, len(contracts))
    return GovernanceState(config=config, contracts=contracts)


async def handle_transaction(state: GovernanceState, event: TransactionEvent) -> list[Finding]:
    addresses = list(event.addresses)
    findings: list[Finding] = []
    for contract in state.contracts:
        for log in event.filter_log(contract.events, contract.address):
            finding = create_alert(state.config, log.name, contract.address, log.args, addresses)
            if finding is not None:
                findings.append(finding)
    return findings


GOVERNANCE = BotModule(
    bot_type="governance",
    initialize=initialize,
    validate_config=validate_config,
    handle_transaction=handle_transaction,
)
