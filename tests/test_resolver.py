import pytest

from chain_fixtures import PROXY, PROXY_ABI, TOKEN, TOKEN_ABI
from forta_multi_bot.errors import ConfigurationError
from forta_multi_bot.resolver import resolve_entries

CONTRACTS = {
    "Token": {
        "address": TOKEN,
        "abiFile": "token.json",
        "proxy": "Proxy",
        "events": {
            "Transfer": {"type": "Info", "severity": "Low", "expression": "value > 100"},
        },
    },
    "Proxy": {
        "address": PROXY,
        "abiFile": "proxy.json",
        "events": {"Upgraded": {"type": "Info", "severity": "High"}},
    },
}

ABIS = {"Token": TOKEN_ABI, "Proxy": PROXY_ABI}


def test_proxy_entries_come_first() -> None:
    entries = resolve_entries("events", "Token", CONTRACTS, ABIS)
    assert [e.name for e in entries] == ["Upgraded", "Transfer"]
    assert entries[0].via_proxy == "Proxy"
    assert entries[0].signature == "event Upgraded(address indexed implementation)"
    assert entries[1].via_proxy is None
    assert entries[1].expression is not None
    assert entries[1].expression.field_name == "value"


def test_resolution_is_idempotent() -> None:
    first = resolve_entries("events", "Token", CONTRACTS, ABIS)
    second = resolve_entries("events", "Token", CONTRACTS, ABIS)
    assert first == second


def test_contract_without_proxy_resolves_own_entries() -> None:
    entries = resolve_entries("events", "Proxy", CONTRACTS, ABIS)
    assert [(e.name, e.severity) for e in entries] == [("Upgraded", "High")]


def test_unknown_proxy_target_is_a_configuration_error() -> None:
    contracts = {"Token": {**CONTRACTS["Token"], "proxy": "Missing"}}
    with pytest.raises(ConfigurationError):
        resolve_entries("events", "Token", contracts, ABIS)
