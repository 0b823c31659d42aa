import asyncio

import pytest

from chain_fixtures import (
    ALICE,
    BOB,
    PROXY,
    PROXY_ABI,
    SENDER,
    TOKEN,
    TOKEN_ABI,
    encode_log,
    fragment,
    make_config,
    make_context,
    make_tx_event,
)
from forta_multi_bot.bots.monitor_events import ADMIN_EVENTS, MONITOR_EVENTS
from forta_multi_bot.errors import ConfigValidationFailed
from forta_multi_bot.types import FindingSeverity, FindingType


def _contracts(expression: str | None = None) -> dict:
    transfer = {"type": "Info", "severity": "Low"}
    if expression is not None:
        transfer["expression"] = expression
    return {"Token": {"address": TOKEN, "abiFile": "token.json", "events": {"Transfer": transfer}}}


def _transfer(value: int, address: str = TOKEN) -> dict:
    return encode_log(fragment(TOKEN_ABI, "Transfer"), address, {"from": ALICE, "to": BOB, "value": value})


def test_event_alert_includes_decoded_arguments() -> None:
    state = asyncio.run(MONITOR_EVENTS.initialize(make_config("monitor-events", _contracts()), make_context()))
    findings = asyncio.run(MONITOR_EVENTS.handle_transaction(state, make_tx_event(logs=[_transfer(5)])))

    assert len(findings) == 1
    finding = findings[0]
    assert finding.name == "PROTOTEST Monitor Event"
    assert finding.alert_id == "DEVTEST-PT-MONITOR-EVENT"
    assert finding.description == "The Transfer event was emitted by the Token contract"
    assert finding.type is FindingType.Info
    assert finding.severity is FindingSeverity.Low
    assert finding.metadata["eventName"] == "Transfer"
    assert finding.metadata["value"] == "5"
    assert finding.addresses == (SENDER, TOKEN)


def test_expression_filters_logs() -> None:
    config = make_config("monitor-events", _contracts("value > 100"))
    state = asyncio.run(MONITOR_EVENTS.initialize(config, make_context()))

    event = make_tx_event(logs=[_transfer(5), _transfer(500)])
    findings = asyncio.run(MONITOR_EVENTS.handle_transaction(state, event))

    assert len(findings) == 1
    assert findings[0].metadata["value"] == "500"
    assert findings[0].description.endswith("with condition met: value > 100")


def test_logs_from_other_contracts_are_ignored() -> None:
    state = asyncio.run(MONITOR_EVENTS.initialize(make_config("monitor-events", _contracts()), make_context()))
    event = make_tx_event(logs=[_transfer(5, address=PROXY)])
    assert asyncio.run(MONITOR_EVENTS.handle_transaction(state, event)) == []


def test_proxy_events_are_watched_on_the_implementation_address() -> None:
    contracts = _contracts()
    contracts["Token"]["proxy"] = "Proxy"
    contracts["Proxy"] = {
        "address": PROXY,
        "abiFile": "proxy.json",
        "events": {"Upgraded": {"type": "Info", "severity": "High"}},
    }
    state = asyncio.run(MONITOR_EVENTS.initialize(make_config("monitor-events", contracts), make_context()))

    upgraded = encode_log(fragment(PROXY_ABI, "Upgraded"), TOKEN, {"implementation": BOB})
    findings = asyncio.run(MONITOR_EVENTS.handle_transaction(state, make_tx_event(logs=[upgraded])))

    assert [f.metadata["contractName"] for f in findings] == ["Token"]
    assert findings[0].severity is FindingSeverity.High


def test_admin_events_omit_addresses() -> None:
    state = asyncio.run(ADMIN_EVENTS.initialize(make_config("admin-events", _contracts()), make_context()))
    findings = asyncio.run(ADMIN_EVENTS.handle_transaction(state, make_tx_event(logs=[_transfer(5)])))

    assert findings[0].alert_id == "DEVTEST-PT-ADMIN-EVENT"
    assert findings[0].name == "PROTOTEST Admin Event"
    assert findings[0].addresses is None


def test_validation_reports_every_problem() -> None:
    contracts = {
        "Token": {
            "address": TOKEN,
            "abiFile": "token.json",
            "events": {
                "Missing": {"type": "Info", "severity": "Low"},
                "Transfer": {"type": "Nope", "severity": "Low", "expression": "amount > 1"},
            },
        },
        "Broken": {"address": "0x1234", "abiFile": "token.json"},
    }
    errors = MONITOR_EVENTS.validate_config(make_config("monitor-events", contracts), make_context())

    assert "Token.Missing: invalid event" in errors
    assert "Token.Transfer: invalid argument amount" in errors
    assert "Token.Transfer: invalid finding type 'Nope'" in errors
    assert "invalid address for 'Broken': 0x1234" in errors


def test_initialize_refuses_invalid_config() -> None:
    with pytest.raises(ConfigValidationFailed):
        asyncio.run(MONITOR_EVENTS.initialize(make_config("monitor-events", {}), make_context()))
