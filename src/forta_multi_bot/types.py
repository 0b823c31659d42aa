from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class FindingType(Enum):
    Unknown = 0
    Exploit = 1
    Suspicious = 2
    Degraded = 3
    Info = 4


class FindingSeverity(Enum):
    Unknown = 0
    Info = 1
    Low = 2
    Medium = 3
    High = 4
    Critical = 5


@dataclass(frozen=True)
class Finding:
    name: str
    description: str
    alert_id: str
    type: FindingType
    severity: FindingSeverity
    protocol: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)
    addresses: tuple[str, ...] | None = None


@dataclass(frozen=True)
class Block:
    number: int
    timestamp: int
    hash: str | None = None


@dataclass(frozen=True)
class Transaction:
    hash: str
    from_: str
    to: str | None
    value: int = 0
    data: str = "0x"


@dataclass(frozen=True)
class Receipt:
    status: bool
    logs: tuple[dict[str, Any], ...] = ()


@dataclass(frozen=True)
class Trace:
    from_: str | None
    to: str | None
    input: str = "0x"


@dataclass(frozen=True)
class DecodedLog:
    name: str
    signature: str
    address: str
    args: dict[str, Any]
    log_index: int | None = None


@dataclass(frozen=True)
class DecodedCall:
    name: str
    signature: str
    address: str
    args: dict[str, Any]
