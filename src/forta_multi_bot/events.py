from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from eth_abi.exceptions import DecodingError
from web3.exceptions import Web3Exception

from .abi import Fragment, decode_call, decode_log, event_topic, format_signature, function_selector
from .types import Block, DecodedCall, DecodedLog, Receipt, Trace, Transaction

logger = logging.getLogger(__name__)

_DECODE_ERRORS = (Web3Exception, DecodingError, ValueError)


def _as_list(fragments: Fragment | Iterable[Fragment]) -> list[Fragment]:
    return [fragments] if isinstance(fragments, Mapping) else list(fragments)


def _same_address(left: str | None, right: str | None) -> bool:
    return bool(left) and bool(right) and left.lower() == right.lower()


@dataclass(frozen=True)
class BlockEvent:
    block: Block

    @property
    def block_number(self) -> int:
        return self.block.number


@dataclass
class TransactionEvent:
    transaction: Transaction
    block: Block
    addresses: dict[str, bool] = field(default_factory=dict)
    receipt: Receipt | None = None
    traces: list[Trace] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.addresses:
            self.addresses = collect_addresses(self.transaction, self.receipt, self.traces)
        else:
            self.addresses = {a.lower(): True for a in self.addresses}

    @property
    def hash(self) -> str:
        return self.transaction.hash

    @property
    def from_(self) -> str:
        return self.transaction.from_

    @property
    def to(self) -> str | None:
        return self.transaction.to

    @property
    def block_number(self) -> int:
        return self.block.number

    def involves(self, address: str) -> bool:
        return address.lower() in self.addresses

    def filter_log(
        self, fragments: Fragment | Iterable[Fragment], address: str | None = None
    ) -> list[DecodedLog]:
        if self.receipt is None:
            return []

        wanted = {event_topic(fragment): fragment for fragment in _as_list(fragments)}
        out: list[DecodedLog] = []
        for log in self.receipt.logs:
            if address is not None and not _same_address(log.get("address"), address):
                continue
            topics = log.get("topics") or []
            if not topics:
                continue
            fragment = wanted.get(str(topics[0]).lower())
            if fragment is None:
                continue
            try:
                args = decode_log(fragment, log)
            except _DECODE_ERRORS as exc:
                logger.debug("Skipping undecodable %s log: %s", fragment["name"], exc)
                continue
            out.append(
                DecodedLog(
                    name=fragment["name"],
                    signature=format_signature(fragment),
                    address=str(log.get("address", "")).lower(),
                    args=args,
                    log_index=_maybe_int(log.get("logIndex")),
                )
            )
        return out

    def filter_function(
        self, fragments: Fragment | Iterable[Fragment], address: str | None = None
    ) -> list[DecodedCall]:
        wanted = {function_selector(fragment): fragment for fragment in _as_list(fragments)}
        calls: list[tuple[str | None, str]] = [(self.transaction.to, self.transaction.data)]
        calls.extend((trace.to, trace.input) for trace in self.traces)

        out: list[DecodedCall] = []
        for to, data in calls:
            if not to or not data or len(data) < 10:
                continue
            if address is not None and not _same_address(to, address):
                continue
            fragment = wanted.get(data[:10].lower())
            if fragment is None:
                continue
            try:
                args = decode_call(fragment, data)
            except _DECODE_ERRORS as exc:
                logger.debug("Skipping undecodable %s call: %s", fragment["name"], exc)
                continue
            out.append(
                DecodedCall(
                    name=fragment["name"],
                    signature=format_signature(fragment),
                    address=to.lower(),
                    args=args,
                )
            )
        return out


def collect_addresses(
    transaction: Transaction, receipt: Receipt | None, traces: list[Trace]
) -> dict[str, bool]:
    found: dict[str, bool] = {}
    for address in (transaction.from_, transaction.to):
        if address:
            found[address.lower()] = True
    if receipt is not None:
        for log in receipt.logs:
            if log.get("address"):
                found[str(log["address"]).lower()] = True
    for trace in traces:
        for address in (trace.from_, trace.to):
            if address:
                found[address.lower()] = True
    return found


def _maybe_int(value: Any) -> int | None:
    if value is None:
        return None
    if isinstance(value, int):
        return value
    return int(str(value), 16) if str(value).startswith("0x") else int(value)


def traces_from_rpc(entries: Iterable[Mapping[str, Any]]) -> list[Trace]:
    """
    Converts trace_block / trace_transaction call entries into Trace records.

    The root entry (empty traceAddress) repeats the transaction itself and is
    skipped, as are create, reward and selfdestruct entries.
    """
    traces: list[Trace] = []
    for entry in entries:
        if entry.get("type") != "call" or not entry.get("traceAddress"):
            continue
        action = entry.get("action") or {}
        traces.append(
            Trace(
                from_=action.get("from"),
                to=action.get("to"),
                input=str(action.get("input") or "0x"),
            )
        )
    return traces


def transaction_event_from_rpc(
    tx: dict[str, Any],
    block: Block,
    receipt: dict[str, Any] | None = None,
    traces: Iterable[Mapping[str, Any]] = (),
) -> TransactionEvent:
    """Builds an event from eth_getBlockByNumber / eth_getTransactionReceipt / trace_block payloads."""
    transaction = Transaction(
        hash=str(tx["hash"]),
        from_=str(tx.get("from", "")),
        to=tx.get("to"),
        value=_maybe_int(tx.get("value")) or 0,
        data=str(tx.get("input") or tx.get("data") or "0x"),
    )
    parsed_receipt = None
    if receipt is not None:
        parsed_receipt = Receipt(
            status=_maybe_int(receipt.get("status")) == 1,
            logs=tuple(receipt.get("logs") or ()),
        )
    return TransactionEvent(
        transaction=transaction,
        block=block,
        receipt=parsed_receipt,
        traces=traces_from_rpc(traces),
    )


def block_from_rpc(payload: dict[str, Any]) -> Block:
    return Block(
        number=_maybe_int(payload["number"]) or 0,
        timestamp=_maybe_int(payload.get("timestamp")) or 0,
        hash=payload.get("hash"),
    )
