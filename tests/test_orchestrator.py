import asyncio

import pytest

from chain_fixtures import ALICE, BOB, make_context, make_tx_event
from forta_multi_bot.bots.base import BotModule
from forta_multi_bot.bots.registry import BOT_REGISTRY
from forta_multi_bot.config import parse_bot_config
from forta_multi_bot.errors import ConfigValidationFailed
from forta_multi_bot.events import BlockEvent
from forta_multi_bot.orchestrator import BotOrchestrator, OrchestratorState
from forta_multi_bot.types import Block


def _protocol(*bots, gather_mode: str = "any"):
    return parse_bot_config(
        {
            "developerAbbreviation": "DEVTEST",
            "protocolName": "PROTOTEST",
            "protocolAbbreviation": "PT",
            "gatherMode": gather_mode,
            "bots": list(bots),
        }
    )


def _watch(name: str, address: str) -> dict:
    return {
        "botType": "address-watch",
        "name": name,
        "contracts": {name: {"address": address, "watch": {"type": "Info", "severity": "Low"}}},
    }


async def _explode(state, event):
    raise RuntimeError("boom")


async def _no_state(config, context):
    return None


EXPLODING = BotModule(bot_type="exploding", initialize=_no_state, handle_transaction=_explode)


def test_only_matching_bot_alerts() -> None:
    orchestrator = BotOrchestrator(_protocol(_watch("alice", ALICE), _watch("bob", BOB)), make_context())
    asyncio.run(orchestrator.initialize())

    findings = asyncio.run(orchestrator.handle_transaction(make_tx_event(from_=ALICE, to=None)))
    assert [f.metadata["contractName"] for f in findings] == ["alice"]


def test_union_is_in_declaration_order() -> None:
    orchestrator = BotOrchestrator(_protocol(_watch("bob", BOB), _watch("alice", ALICE)), make_context())
    asyncio.run(orchestrator.initialize())
    assert orchestrator.state is OrchestratorState.INITIALIZED

    findings = asyncio.run(orchestrator.handle_transaction(make_tx_event(from_=ALICE, to=BOB)))
    assert [f.metadata["contractName"] for f in findings] == ["bob", "alice"]
    assert orchestrator.state is OrchestratorState.RUNNING


def test_gather_all_requires_every_bot() -> None:
    protocol = _protocol(_watch("alice", ALICE), _watch("bob", BOB), gather_mode="all")
    orchestrator = BotOrchestrator(protocol, make_context())
    asyncio.run(orchestrator.initialize())

    only_alice = asyncio.run(orchestrator.handle_transaction(make_tx_event(from_=ALICE, to=None)))
    both = asyncio.run(orchestrator.handle_transaction(make_tx_event(from_=ALICE, to=BOB)))

    assert only_alice == []
    assert len(both) == 2


def test_block_handlers_skip_transaction_only_bots() -> None:
    orchestrator = BotOrchestrator(_protocol(_watch("alice", ALICE)), make_context())
    asyncio.run(orchestrator.initialize())
    assert asyncio.run(orchestrator.handle_block(BlockEvent(Block(number=1, timestamp=1)))) == []


def test_failing_bot_does_not_block_others() -> None:
    protocol = _protocol({"botType": "exploding", "name": "bad", "contracts": {}}, _watch("alice", ALICE))
    registry = {**BOT_REGISTRY, "exploding": EXPLODING}
    orchestrator = BotOrchestrator(protocol, make_context(), registry=registry)
    asyncio.run(orchestrator.initialize())

    findings = asyncio.run(orchestrator.handle_transaction(make_tx_event(from_=ALICE)))
    assert [f.metadata["contractName"] for f in findings] == ["alice"]


def test_validation_errors_are_aggregated_across_bots() -> None:
    broken_watch = _watch("broken", "0x1234")
    unknown = {"botType": "no-such-bot", "name": "nope", "contracts": {}}
    orchestrator = BotOrchestrator(_protocol(broken_watch, unknown, _watch("alice", ALICE)), make_context())

    with pytest.raises(ConfigValidationFailed) as exc_info:
        orchestrator.validate_config()

    assert exc_info.value.errors == [
        "broken:address-watch in config - invalid address for 'broken': 0x1234",
        "nope:no-such-bot module not found!",
    ]


def test_handlers_require_initialization() -> None:
    orchestrator = BotOrchestrator(_protocol(_watch("alice", ALICE)), make_context())
    with pytest.raises(RuntimeError):
        asyncio.run(orchestrator.handle_transaction(make_tx_event()))


def test_failed_validation_is_repeated_by_initialize() -> None:
    unknown = {"botType": "no-such-bot", "name": "ghost", "contracts": {}}
    orchestrator = BotOrchestrator(_protocol(unknown), make_context())

    with pytest.raises(ConfigValidationFailed):
        orchestrator.validate_config()
    assert orchestrator.state is OrchestratorState.UNCONFIGURED

    with pytest.raises(ConfigValidationFailed) as exc_info:
        asyncio.run(orchestrator.initialize())
    assert exc_info.value.errors == ["ghost:no-such-bot module not found!"]
    assert orchestrator.bots == []
