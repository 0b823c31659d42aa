import json

import pytest

from forta_multi_bot.config import load_bot_config, load_settings, parse_bot_config
from forta_multi_bot.errors import ConfigurationError, ConfigValidationFailed


def _payload(**overrides):
    payload = {
        "developerAbbreviation": "DEVTEST",
        "protocolName": "PROTOTEST",
        "protocolAbbreviation": "PT",
        "bots": [
            {
                "botType": "transaction-failure-count",
                "name": "failures",
                "blockWindow": 5,
                "contracts": {},
            }
        ],
    }
    payload.update(overrides)
    return payload


def test_bot_options_are_kept_apart_from_contracts() -> None:
    protocol = parse_bot_config(_payload())

    assert protocol.gather_mode == "any"
    bot = protocol.bots[0]
    assert bot.label == "failures:transaction-failure-count"
    assert bot.get("blockWindow") == 5
    assert bot.get("missing", 3) == 3
    assert bot.protocol_abbreviation == "PT"


def test_all_top_level_errors_are_reported() -> None:
    with pytest.raises(ConfigValidationFailed) as exc_info:
        parse_bot_config({"protocolName": "PROTOTEST", "gatherMode": "some"})

    assert exc_info.value.errors == [
        "developerAbbreviation not defined!",
        "protocolAbbreviation not defined!",
        "gatherMode must be one of any, all",
        "bots not defined!",
    ]


def test_bot_names_must_be_unique() -> None:
    bot = {"botType": "address-watch", "name": "watch", "contracts": {}}
    with pytest.raises(ConfigValidationFailed) as exc_info:
        parse_bot_config(_payload(bots=[bot, dict(bot)]))
    assert exc_info.value.errors == ["Bot 1 reuses the name watch"]


def test_load_bot_config_reads_file(tmp_path) -> None:
    path = tmp_path / "bot-config.json"
    path.write_text(json.dumps(_payload(gatherMode="ALL")), encoding="utf-8")
    assert load_bot_config(str(path)).gather_mode == "all"


def test_load_bot_config_missing_file(tmp_path) -> None:
    with pytest.raises(ConfigurationError):
        load_bot_config(str(tmp_path / "nope.json"))


def test_load_settings_reads_environment(monkeypatch, tmp_path) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("JSON_RPC_URL", "http://localhost:8545")
    monkeypatch.setenv("WS_RPC_URL", "ws://localhost:8546")
    monkeypatch.setenv("RPC_TIMEOUT_SECONDS", "2.5")
    monkeypatch.delenv("TELEGRAM_BOT_TOKEN", raising=False)

    settings = load_settings()

    assert settings.json_rpc_url == "http://localhost:8545"
    assert settings.rpc_timeout_seconds == 2.5
    assert settings.telegram_bot_token is None


def test_load_settings_requires_rpc_urls(monkeypatch, tmp_path) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("JSON_RPC_URL", raising=False)
    monkeypatch.setenv("WS_RPC_URL", "ws://localhost:8546")
    with pytest.raises(ValueError):
        load_settings()
