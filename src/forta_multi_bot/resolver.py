from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from .abi import Fragment, format_signature, get_fragment
from .errors import ConfigurationError
from .expressions import Expression, parse_expression

_KIND_BY_SECTION = {"events": "event", "functions": "function"}


@dataclass(frozen=True)
class MonitorEntry:
    name: str
    signature: str
    fragment: Fragment = field(compare=False, repr=False)
    type: str
    severity: str
    expression: Expression | None = None
    via_proxy: str | None = None


def _build_entry(
    name: str, settings: Mapping[str, Any], abi: list[Fragment], kind: str, via_proxy: str | None
) -> MonitorEntry:
    expression_text = settings.get("expression")
    fragment = get_fragment(abi, kind, name)
    return MonitorEntry(
        name=name,
        signature=format_signature(fragment),
        fragment=fragment,
        type=str(settings.get("type")),
        severity=str(settings.get("severity")),
        expression=parse_expression(expression_text) if expression_text is not None else None,
        via_proxy=via_proxy,
    )


def resolve_entries(
    section: str,
    contract_name: str,
    contracts: Mapping[str, Mapping[str, Any]],
    abis: Mapping[str, list[Fragment]],
) -> list[MonitorEntry]:
    """
    Resolves the monitored events or functions for one configured contract.

    Entries inherited through `proxy` come first, using the proxied contract's
    ABI for their fragments; the contract's own entries follow.
    """
    kind = _KIND_BY_SECTION[section]
    entry = contracts[contract_name]
    own = entry.get(section) or {}
    proxy_name = entry.get("proxy")

    resolved: list[MonitorEntry] = []
    if proxy_name:
        if proxy_name not in contracts:
            raise ConfigurationError(
                f"Contract {contract_name} names unknown proxy target {proxy_name}"
            )
        proxied = contracts[proxy_name].get(section) or {}
        for name, settings in proxied.items():
            resolved.append(_build_entry(name, settings, abis[proxy_name], kind, proxy_name))

    for name, settings in own.items():
        resolved.append(_build_entry(name, settings, abis[contract_name], kind, None))

    return resolved
