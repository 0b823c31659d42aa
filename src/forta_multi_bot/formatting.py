from __future__ import annotations

from html import escape

from .types import Finding, FindingSeverity

SEVERITY_ICONS = {
    FindingSeverity.Critical: "🚨",
    FindingSeverity.High: "🔴",
    FindingSeverity.Medium: "🟠",
    FindingSeverity.Low: "🟡",
    FindingSeverity.Info: "🔵",
    FindingSeverity.Unknown: "⚪",
}


def build_tx_link(explorer_base: str, tx_hash: str | None) -> str | None:
    if not tx_hash:
        return None
    return f"{explorer_base.rstrip('/')}/tx/{tx_hash}"


def format_finding_message(finding: Finding, tx_url: str | None = None) -> str:
    icon = SEVERITY_ICONS.get(finding.severity, "⚪")
    lines = [
        f"{icon} <b>{escape(finding.name)}</b>",
        "",
        escape(finding.description),
        "",
        f"🆔 <b>Alert:</b> {escape(finding.alert_id)}",
        f"📊 <b>Severity:</b> {finding.severity.name} | <b>Type:</b> {finding.type.name}",
    ]
    if finding.protocol:
        lines.append(f"🏛 <b>Protocol:</b> {escape(finding.protocol)}")

    if finding.metadata:
        lines.append("")
        for key, value in finding.metadata.items():
            lines.append(f"• <code>{escape(key)}</code>: {escape(value)}")

    if tx_url:
        lines.append("")
        lines.append(f'🔗 <a href="{escape(tx_url, quote=True)}">View transaction</a>')
    return "\n".join(lines)


def finding_log_line(finding: Finding) -> str:
    return f"[{finding.alert_id}] {finding.severity.name}: {finding.description}"
