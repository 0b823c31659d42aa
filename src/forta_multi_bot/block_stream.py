from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from typing import Any

import websockets

logger = logging.getLogger(__name__)

SUBSCRIBE_NEW_HEADS = {"jsonrpc": "2.0", "id": 1, "method": "eth_subscribe", "params": ["newHeads"]}


class BlockStream:
    """Yields new block numbers from an eth_subscribe("newHeads") websocket subscription."""

    def __init__(self, ws_url: str) -> None:
        self.ws_url = ws_url
        self.last_block: int | None = None

    async def blocks(self) -> AsyncIterator[int]:
        backoff = 1.0
        while True:
            try:
                async with websockets.connect(self.ws_url, ping_interval=20, ping_timeout=20) as ws:
                    await ws.send(json.dumps(SUBSCRIBE_NEW_HEADS))
                    logger.info("Subscribed to new heads at %s", self.ws_url)
                    backoff = 1.0

                    async for raw in ws:
                        number = parse_head_message(raw)
                        if number is None:
                            continue
                        for block_number in self._fill_gap(number):
                            yield block_number
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.warning("WS disconnected (%s). Reconnecting in %.1fs", exc, backoff)
                await asyncio.sleep(backoff)
                backoff = min(backoff * 2, 30.0)

    def _fill_gap(self, number: int) -> list[int]:
        # Blocks missed across a reconnect are replayed in order; repeats are dropped.
        if self.last_block is not None and number <= self.last_block:
            return []
        start = number if self.last_block is None else self.last_block + 1
        self.last_block = number
        return list(range(start, number + 1))


def parse_head_message(raw: str | bytes) -> int | None:
    try:
        payload = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        return None
    if not isinstance(payload, dict) or payload.get("method") != "eth_subscription":
        return None

    result: Any = (payload.get("params") or {}).get("result")
    if not isinstance(result, dict) or "number" not in result:
        return None
    try:
        return int(str(result["number"]), 16)
    except ValueError:
        return None
