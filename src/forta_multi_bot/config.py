from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from typing import Any

from dotenv import load_dotenv

from .errors import ConfigurationError, ConfigValidationFailed

GATHER_MODES = ("any", "all")


@dataclass(frozen=True)
class Settings:
    bot_config_path: str
    abi_dir: str
    json_rpc_url: str
    ws_rpc_url: str
    telegram_bot_token: str | None
    telegram_chat_id: str | None
    explorer_base_url: str
    health_log_interval_seconds: int
    rpc_timeout_seconds: float
    log_level: str


@dataclass(frozen=True)
class BotConfig:
    bot_type: str
    name: str
    developer_abbreviation: str
    protocol_name: str
    protocol_abbreviation: str
    contracts: dict[str, dict[str, Any]]
    options: dict[str, Any] = field(default_factory=dict)

    def get(self, key: str, default: Any = None) -> Any:
        return self.options.get(key, default)

    @property
    def label(self) -> str:
        return f"{self.name}:{self.bot_type}"


@dataclass(frozen=True)
class ProtocolConfig:
    developer_abbreviation: str
    protocol_name: str
    protocol_abbreviation: str
    gather_mode: str
    bots: tuple[BotConfig, ...]


def _required(name: str) -> str:
    value = os.getenv(name, "").strip()
    if not value:
        raise ValueError(f"Missing required environment variable: {name}")
    return value


def _optional_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


def _optional_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return float(raw)


def load_settings() -> Settings:
    load_dotenv()
    return Settings(
        bot_config_path=os.getenv("BOT_CONFIG_PATH", "bot-config.json").strip(),
        abi_dir=os.getenv("ABI_DIR", "abi").strip(),
        json_rpc_url=_required("JSON_RPC_URL"),
        ws_rpc_url=_required("WS_RPC_URL"),
        telegram_bot_token=os.getenv("TELEGRAM_BOT_TOKEN", "").strip() or None,
        telegram_chat_id=os.getenv("TELEGRAM_CHAT_ID", "").strip() or None,
        explorer_base_url=os.getenv("EXPLORER_BASE_URL", "https://etherscan.io").strip(),
        health_log_interval_seconds=_optional_int("HEALTH_LOG_INTERVAL_SECONDS", 60),
        rpc_timeout_seconds=_optional_float("RPC_TIMEOUT_SECONDS", 15.0),
        log_level=os.getenv("LOG_LEVEL", "INFO").strip().upper(),
    )


def _filled(value: Any) -> bool:
    return isinstance(value, str) and value.strip() != ""


def parse_bot_config(payload: dict[str, Any]) -> ProtocolConfig:
    if not isinstance(payload, dict):
        raise ConfigurationError("bot configuration must be a JSON object")

    errors: list[str] = []
    for key in ("developerAbbreviation", "protocolName", "protocolAbbreviation"):
        if not _filled(payload.get(key)):
            errors.append(f"{key} not defined!")

    gather_mode = str(payload.get("gatherMode", "any")).lower()
    if gather_mode not in GATHER_MODES:
        errors.append(f"gatherMode must be one of {', '.join(GATHER_MODES)}")

    raw_bots = payload.get("bots")
    if not isinstance(raw_bots, list) or not raw_bots:
        errors.append("bots not defined!")
        raw_bots = []

    bots: list[BotConfig] = []
    seen: set[str] = set()
    for index, raw in enumerate(raw_bots):
        if not isinstance(raw, dict):
            errors.append(f"Bot {index} is not an object")
            continue
        if not _filled(raw.get("botType")):
            errors.append(f"Bot {index} has no type!")
            continue
        if not _filled(raw.get("name")):
            errors.append(f"Bot {index} has no name!")
            continue
        if raw["name"] in seen:
            errors.append(f"Bot {index} reuses the name {raw['name']}")
            continue
        seen.add(raw["name"])
        contracts = raw.get("contracts")
        if not isinstance(contracts, dict):
            errors.append(f"{raw['name']}:{raw['botType']} has no contracts!")
            continue

        options = {k: v for k, v in raw.items() if k not in ("botType", "name", "contracts")}
        bots.append(
            BotConfig(
                bot_type=raw["botType"],
                name=raw["name"],
                developer_abbreviation=str(payload.get("developerAbbreviation", "")),
                protocol_name=str(payload.get("protocolName", "")),
                protocol_abbreviation=str(payload.get("protocolAbbreviation", "")),
                contracts=contracts,
                options=options,
            )
        )

    if errors:
        raise ConfigValidationFailed(errors)

    return ProtocolConfig(
        developer_abbreviation=payload["developerAbbreviation"],
        protocol_name=payload["protocolName"],
        protocol_abbreviation=payload["protocolAbbreviation"],
        gather_mode=gather_mode,
        bots=tuple(bots),
    )


def load_bot_config(path: str) -> ProtocolConfig:
    try:
        with open(path, "r", encoding="utf-8") as fp:
            payload = json.load(fp)
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigurationError(f"Unable to read bot configuration {path}: {exc}") from exc
    return parse_bot_config(payload)
