from __future__ import annotations

import json
import logging
from collections import defaultdict
from typing import Any

from aiohttp import ClientTimeout
from web3 import AsyncWeb3, Web3
from web3.types import RPCEndpoint

from .errors import TransientIOError

logger = logging.getLogger(__name__)


def _block_id(block: int | str | None) -> int | str:
    return "latest" if block is None else block


def _plain(value: Any) -> Any:
    # AttributeDict / HexBytes results as JSON-RPC shaped dicts and hex strings.
    return json.loads(Web3.to_json(value))


class ChainProvider:
    """Chain queries the bots rely on, over an AsyncWeb3 HTTP provider."""

    def __init__(self, rpc_url: str, timeout: float = 15.0, w3: AsyncWeb3 | None = None) -> None:
        self.rpc_url = rpc_url
        self.w3 = w3 or AsyncWeb3(
            AsyncWeb3.AsyncHTTPProvider(
                rpc_url,
                request_kwargs={"timeout": ClientTimeout(total=timeout)},
                exception_retry_configuration=None,
            )
        )

    async def close(self) -> None:
        await self.w3.provider.disconnect()

    async def _run(self, label: str, call) -> Any:
        try:
            return await call
        except Exception as exc:
            raise TransientIOError(f"{label} failed: {exc}") from exc

    async def get_balance(self, address: str, block: int | str | None = None) -> int:
        return await self._run(
            "eth_getBalance",
            self.w3.eth.get_balance(Web3.to_checksum_address(address), _block_id(block)),
        )

    async def get_code(self, address: str, block: int | str | None = None) -> str:
        code = await self._run(
            "eth_getCode",
            self.w3.eth.get_code(Web3.to_checksum_address(address), _block_id(block)),
        )
        return Web3.to_hex(code)

    async def get_transaction_count(self, address: str, block: int | str | None = None) -> int:
        return await self._run(
            "eth_getTransactionCount",
            self.w3.eth.get_transaction_count(Web3.to_checksum_address(address), _block_id(block)),
        )

    async def get_logs(self, filter_params: dict[str, Any]) -> list[dict[str, Any]]:
        logs = await self._run("eth_getLogs", self.w3.eth.get_logs(filter_params))
        return _plain(list(logs or []))

    async def get_block_number(self) -> int:
        return await self._run("eth_blockNumber", self.w3.eth.get_block_number())

    async def get_block(self, block: int | str, full_transactions: bool = True) -> dict[str, Any]:
        result = await self._run(
            f"eth_getBlockByNumber({block})",
            self.w3.eth.get_block(block, full_transactions=full_transactions),
        )
        return _plain(result)

    async def get_transaction_receipt(self, tx_hash: str) -> dict[str, Any]:
        result = await self._run(
            f"eth_getTransactionReceipt({tx_hash})",
            self.w3.eth.get_transaction_receipt(tx_hash),
        )
        return _plain(result)

    async def call(self, to: str, data: str, block: int | str | None = None) -> str:
        result = await self._run(
            "eth_call",
            self.w3.eth.call({"to": Web3.to_checksum_address(to), "data": data}, _block_id(block)),
        )
        return Web3.to_hex(result)

    async def get_traces(self, block: int) -> dict[str, list[dict[str, Any]]]:
        """trace_block call entries grouped by lowercase transaction hash."""
        response = await self._run(
            "trace_block",
            self.w3.provider.make_request(RPCEndpoint("trace_block"), [hex(block)]),
        )
        if response.get("error"):
            raise TransientIOError(f"trace_block returned error: {response['error']}")

        grouped: dict[str, list[dict[str, Any]]] = defaultdict(list)
        for entry in response.get("result") or []:
            tx_hash = entry.get("transactionHash")
            if tx_hash:
                grouped[str(tx_hash).lower()].append(entry)
        return dict(grouped)
