from __future__ import annotations

from typing import Any

from eth_abi import encode as abi_encode

from forta_multi_bot.abi import AbiRegistry, event_topic, function_selector
from forta_multi_bot.bots.base import BotContext
from forta_multi_bot.config import BotConfig
from forta_multi_bot.events import TransactionEvent
from forta_multi_bot.types import Block, Receipt, Trace, Transaction

TOKEN = "0x408ed6354d4973f66138c91495f2f2fcbd8724c3"
PROXY = "0x1111111111111111111111111111111111111111"
ALICE = "0x9b68c14e936104e9a7a24c712beecdc220002984"
BOB = "0x2222222222222222222222222222222222222222"
SENDER = "0x3333333333333333333333333333333333333333"

TOKEN_ABI = [
    {
        "type": "event",
        "name": "Transfer",
        "anonymous": False,
        "inputs": [
            {"name": "from", "type": "address", "indexed": True},
            {"name": "to", "type": "address", "indexed": True},
            {"name": "value", "type": "uint256", "indexed": False},
        ],
    },
    {
        "type": "event",
        "name": "Paused",
        "anonymous": False,
        "inputs": [
            {"name": "account", "type": "address", "indexed": False},
            {"name": "paused", "type": "bool", "indexed": False},
        ],
    },
    {
        "type": "function",
        "name": "transfer",
        "inputs": [
            {"name": "to", "type": "address"},
            {"name": "amount", "type": "uint256"},
        ],
        "outputs": [{"name": "", "type": "bool"}],
    },
    {
        "type": "function",
        "name": "totalSupply",
        "inputs": [],
        "outputs": [{"name": "", "type": "uint256"}],
    },
]

PROXY_ABI = [
    {
        "type": "event",
        "name": "Upgraded",
        "anonymous": False,
        "inputs": [{"name": "implementation", "type": "address", "indexed": True}],
    },
]


def fragment(abi: list[dict[str, Any]], name: str) -> dict[str, Any]:
    return next(item for item in abi if item.get("name") == name)


def make_context(provider: Any = None, overrides: dict[str, Any] | None = None) -> BotContext:
    abis = overrides if overrides is not None else {"token.json": TOKEN_ABI, "proxy.json": PROXY_ABI}
    return BotContext(provider=provider, abis=AbiRegistry("unused", overrides=abis))


def make_config(bot_type: str, contracts: dict[str, Any], name: str = "test-bot", **options: Any) -> BotConfig:
    return BotConfig(
        bot_type=bot_type,
        name=name,
        developer_abbreviation="DEVTEST",
        protocol_name="PROTOTEST",
        protocol_abbreviation="PT",
        contracts=contracts,
        options=options,
    )


def encode_log(abi_fragment: dict[str, Any], address: str, values: dict[str, Any]) -> dict[str, Any]:
    topics = [event_topic(abi_fragment)]
    data_types: list[str] = []
    data_values: list[Any] = []
    for param in abi_fragment["inputs"]:
        if param.get("indexed"):
            topics.append("0x" + abi_encode([param["type"]], [values[param["name"]]]).hex())
        else:
            data_types.append(param["type"])
            data_values.append(values[param["name"]])
    return {
        "address": address,
        "topics": topics,
        "data": "0x" + abi_encode(data_types, data_values).hex(),
        "logIndex": "0x0",
    }


def encode_call(abi_fragment: dict[str, Any], values: list[Any]) -> str:
    types = [param["type"] for param in abi_fragment["inputs"]]
    return function_selector(abi_fragment) + abi_encode(types, values).hex()


def make_tx_event(
    *,
    block_number: int = 100,
    tx_hash: str = "0xabc",
    from_: str = SENDER,
    to: str | None = TOKEN,
    data: str = "0x",
    logs: list[dict[str, Any]] | None = None,
    status: bool = True,
    addresses: list[str] | None = None,
    traces: list[Trace] | None = None,
    timestamp: int = 1_700_000_000,
) -> TransactionEvent:
    return TransactionEvent(
        transaction=Transaction(hash=tx_hash, from_=from_, to=to, data=data),
        block=Block(number=block_number, timestamp=timestamp),
        addresses={a: True for a in addresses} if addresses else {},
        receipt=Receipt(status=status, logs=tuple(logs or ())),
        traces=traces or [],
    )
