import json

import pytest
from eth_abi import encode as abi_encode
from eth_utils import to_checksum_address
from web3.exceptions import Web3Exception

from chain_fixtures import ALICE, BOB, TOKEN, TOKEN_ABI, encode_call, encode_log, fragment
from forta_multi_bot.abi import (
    AbiRegistry,
    decode_call,
    decode_log,
    event_topic,
    extract_args,
    format_signature,
    function_selector,
    normalize_fragment,
)
from forta_multi_bot.errors import ConfigurationError

TRANSFER_TOPIC = "0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"


def test_event_topic_matches_erc20_transfer() -> None:
    transfer = fragment(TOKEN_ABI, "Transfer")
    assert format_signature(transfer) == "event Transfer(address indexed from, address indexed to, uint256 value)"
    assert event_topic(transfer) == TRANSFER_TOPIC


def test_function_selector_matches_erc20_transfer() -> None:
    transfer = fragment(TOKEN_ABI, "transfer")
    assert format_signature(transfer) == "function transfer(address to, uint256 amount)"
    assert function_selector(transfer) == "0xa9059cbb"


def test_format_signature_writes_tuples_canonically() -> None:
    item = {
        "type": "function",
        "name": "submit",
        "inputs": [
            {
                "name": "order",
                "type": "tuple",
                "components": [{"name": "amount", "type": "uint256"}, {"name": "owner", "type": "address"}],
            },
            {"name": "tags", "type": "bytes32[]"},
        ],
    }
    assert format_signature(item) == "function submit((uint256,address) order, bytes32[] tags)"
    assert function_selector(item) == function_selector({**item, "stateMutability": "view", "outputs": []})


def test_normalize_fragment_names_unnamed_inputs_by_position() -> None:
    item = {"type": "event", "name": "Ping", "inputs": [{"name": "", "type": "uint256"}]}
    normalized = normalize_fragment(item)
    assert normalized["inputs"] == [{"name": "0", "type": "uint256", "indexed": False}]
    assert normalized["anonymous"] is False
    assert item["inputs"][0]["name"] == ""


def test_decode_log_checksums_addresses() -> None:
    transfer = fragment(TOKEN_ABI, "Transfer")
    log = encode_log(transfer, TOKEN, {"from": ALICE, "to": BOB, "value": 5})
    assert decode_log(transfer, log) == {
        "from": to_checksum_address(ALICE),
        "to": "0x2222222222222222222222222222222222222222",
        "value": 5,
    }


def test_decode_log_param_named_indexed_stays_in_data() -> None:
    item = {
        "type": "event",
        "name": "Counted",
        "anonymous": False,
        "inputs": [
            {"name": "indexed", "type": "uint256", "indexed": False},
            {"name": "owner", "type": "address", "indexed": True},
        ],
    }
    log = encode_log(item, TOKEN, {"indexed": 9, "owner": ALICE})
    assert len(log["topics"]) == 2
    assert decode_log(item, log) == {"indexed": 9, "owner": to_checksum_address(ALICE)}


def test_decode_log_keeps_topic_hash_for_indexed_strings() -> None:
    item = {
        "type": "event",
        "name": "Named",
        "anonymous": False,
        "inputs": [
            {"name": "label", "type": "string", "indexed": True},
            {"name": "payload", "type": "bytes", "indexed": False},
        ],
    }
    label_hash = "0x" + "ab" * 32
    log = {
        "address": TOKEN,
        "topics": [event_topic(item), label_hash],
        "data": "0x" + abi_encode(["bytes"], [b"\x01\x02"]).hex(),
    }
    assert decode_log(item, log) == {"label": label_hash, "payload": "0x0102"}


def test_decode_log_rejects_topic_count_mismatch() -> None:
    transfer = fragment(TOKEN_ABI, "Transfer")
    log = encode_log(transfer, TOKEN, {"from": ALICE, "to": BOB, "value": 5})
    log["topics"] = log["topics"][:2]
    with pytest.raises(Web3Exception):
        decode_log(transfer, log)


def test_decode_call_skips_selector() -> None:
    transfer = fragment(TOKEN_ABI, "transfer")
    data = encode_call(transfer, [BOB, 10**18])
    assert decode_call(transfer, data) == {"to": "0x2222222222222222222222222222222222222222", "amount": 10**18}


def test_decode_call_returns_tuples_as_dicts() -> None:
    item = {
        "type": "function",
        "name": "submit",
        "inputs": [
            {
                "name": "order",
                "type": "tuple",
                "components": [{"name": "amount", "type": "uint256"}, {"name": "owner", "type": "address"}],
            },
        ],
    }
    data = function_selector(item) + abi_encode(["(uint256,address)"], [(3, BOB)]).hex()
    assert decode_call(item, data) == {"order": {"amount": 3, "owner": "0x2222222222222222222222222222222222222222"}}


def test_extract_args_stringifies_named_values() -> None:
    out = extract_args({"0": "skip", "paused": False, "ids": [1, 2], "value": 7})
    assert out == {"paused": "false", "ids": "1,2", "value": "7"}


def test_registry_reads_per_bot_files(tmp_path) -> None:
    bot_dir = tmp_path / "my-bot"
    bot_dir.mkdir()
    (bot_dir / "token.json").write_text(json.dumps({"abi": TOKEN_ABI}), encoding="utf-8")
    (bot_dir / "bare.json").write_text(json.dumps(TOKEN_ABI), encoding="utf-8")

    registry = AbiRegistry(tmp_path)
    assert registry.get_abi("my-bot", "token.json") == TOKEN_ABI
    assert registry.get_abi("my-bot", "bare") == TOKEN_ABI


def test_registry_raises_configuration_error_for_missing_file(tmp_path) -> None:
    registry = AbiRegistry(tmp_path)
    with pytest.raises(ConfigurationError):
        registry.get_abi("my-bot", "missing.json")
