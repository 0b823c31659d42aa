"""
ABI helpers.

- AbiRegistry loads ABI JSON files from <abi_dir>/<bot name>/<file>
- Topics and selectors are hashed straight from the ABI fragments
- Raw logs and calldata are decoded by a web3 Contract built from one fragment
- format_signature renders a fragment for logs and findings, e.g.
  "event Transfer(address indexed from, address indexed to, uint256 value)"
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from functools import lru_cache
from pathlib import Path
from typing import Any

from eth_utils import event_abi_to_log_topic, function_abi_to_4byte_selector
from web3 import Web3

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

Fragment = dict[str, Any]

# Offline instance, only used for its codec and contract factory.
_w3 = Web3()

_EMPTY_HASH = "0x" + "00" * 32


class AbiRegistry:
    def __init__(self, abi_dir: str | Path = "abi", overrides: dict[str, list[Fragment]] | None = None) -> None:
        self.abi_dir = Path(abi_dir)
        self.overrides = overrides or {}
        self._cache: dict[tuple[str, str], list[Fragment]] = {}

    def get_abi(self, bot_name: str, file_name: str) -> list[Fragment]:
        if file_name in self.overrides:
            return self.overrides[file_name]

        key = (bot_name, file_name)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        path = self.path_for(bot_name, file_name)
        try:
            with open(path, "r", encoding="utf-8") as fp:
                payload = json.load(fp)
        except (OSError, json.JSONDecodeError) as exc:
            raise ConfigurationError(f"Unable to get abi file! {path}: {exc}") from exc

        abi = payload.get("abi") if isinstance(payload, dict) else payload
        if not isinstance(abi, list):
            raise ConfigurationError(f"ABI file {path} does not contain a fragment list")
        self._cache[key] = abi
        return abi

    def path_for(self, bot_name: str, file_name: str) -> Path:
        path = self.abi_dir / bot_name / file_name
        if path.suffix != ".json" and not path.exists():
            path = path.with_name(f"{path.name}.json")
        return path


def objects_from_abi(abi: list[Fragment], kind: str) -> dict[str, Fragment]:
    # Overloaded names keep the first definition.
    out: dict[str, Fragment] = {}
    for entry in abi:
        if entry.get("type") == kind and entry.get("name") and entry["name"] not in out:
            out[entry["name"]] = entry
    return out


def get_fragment(abi: list[Fragment], kind: str, name: str) -> Fragment:
    fragment = objects_from_abi(abi, kind).get(name)
    if fragment is None:
        raise ConfigurationError(f"{kind} {name} not found in ABI")
    return fragment


def canonical_type(param: Fragment) -> str:
    raw = str(param.get("type", ""))
    if raw.startswith("tuple"):
        inner = ",".join(canonical_type(c) for c in param.get("components", []))
        return f"({inner}){raw[len('tuple'):]}"
    return raw


def format_signature(fragment: Fragment) -> str:
    kind = fragment.get("type", "function")
    params: list[str] = []
    for param in fragment.get("inputs", []):
        parts = [canonical_type(param)]
        if kind == "event" and param.get("indexed"):
            parts.append("indexed")
        if param.get("name"):
            parts.append(param["name"])
        params.append(" ".join(parts))
    return f"{kind} {fragment['name']}({', '.join(params)})"


def normalize_fragment(fragment: Fragment) -> Fragment:
    """Fills the keys web3 expects and names unnamed inputs by position."""
    out = dict(fragment)
    out["inputs"] = [
        {**param, "name": param.get("name") or str(position)}
        for position, param in enumerate(fragment.get("inputs", []))
    ]
    if out.get("type") == "event":
        out["inputs"] = [{**param, "indexed": bool(param.get("indexed"))} for param in out["inputs"]]
        out.setdefault("anonymous", False)
    else:
        out.setdefault("outputs", [])
        out.setdefault("stateMutability", "nonpayable")
    return out


def event_topic(fragment: Fragment) -> str:
    return "0x" + event_abi_to_log_topic(normalize_fragment(fragment)).hex()


def function_selector(fragment: Fragment) -> str:
    return "0x" + function_abi_to_4byte_selector(normalize_fragment(fragment)).hex()


@lru_cache(maxsize=1024)
def _contract_for(fragment_json: str):
    return _w3.eth.contract(abi=[json.loads(fragment_json)])


def _contract(fragment: Fragment):
    return _contract_for(json.dumps(normalize_fragment(fragment), sort_keys=True))


def normalize_value(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    if isinstance(value, Mapping):
        return {key: normalize_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [normalize_value(item) for item in value]
    return value


def decode_log(fragment: Fragment, log: Mapping[str, Any]) -> dict[str, Any]:
    """
    Decodes a raw log with web3's event processor.

    Indexed dynamic values come back as their topic hash. Addresses are
    checksummed, byte strings become 0x-prefixed hex.
    """
    entry = {
        "address": log.get("address") or "0x" + "00" * 20,
        "topics": list(log.get("topics") or []),
        "data": log.get("data") or "0x",
        "logIndex": log.get("logIndex", 0),
        "transactionIndex": log.get("transactionIndex", 0),
        "transactionHash": log.get("transactionHash", _EMPTY_HASH),
        "blockHash": log.get("blockHash", _EMPTY_HASH),
        "blockNumber": log.get("blockNumber", 0),
    }
    decoded = _contract(fragment).events[fragment["name"]]().process_log(entry)
    return normalize_value(dict(decoded["args"]))


def decode_call(fragment: Fragment, data: str | bytes) -> dict[str, Any]:
    _, args = _contract(fragment).decode_function_input(data)
    return normalize_value(dict(args))


def extract_args(args: dict[str, Any]) -> dict[str, str]:
    """Named arguments as strings for finding metadata."""
    out: dict[str, str] = {}
    for key, value in args.items():
        if key.isdigit():
            continue
        if isinstance(value, bool):
            out[key] = str(value).lower()
        elif isinstance(value, list):
            out[key] = ",".join(str(v) for v in value)
        else:
            out[key] = str(value)
    return out
