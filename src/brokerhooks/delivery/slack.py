"""
Slack incoming-webhook rendering of an alert batch.
"""

from __future__ import annotations

import json
from collections import Counter
from typing import Any
from urllib.parse import urlencode

from brokerhooks.core.types import Alert, AlertSeverity, OutboundPayload

MAX_ATTACHMENTS = 10

SEVERITY_COLORS = {
    AlertSeverity.CRITICAL: "danger",
    AlertSeverity.WARNING: "warning",
    AlertSeverity.INFO: "good",
}


def _plural(count: int, word: str) -> str:
    return f"{count} {word}{'' if count == 1 else 's'}"


def _alert_attachment(alert: Alert) -> dict[str, Any]:
    fields = [
        {"title": "Category", "value": alert.category, "short": True},
        {"title": "Source", "value": f"{alert.source_type}: {alert.source_name}", "short": True},
    ]
    if alert.vhost:
        fields.append({"title": "Virtual Host", "value": alert.vhost, "short": True})
    if alert.details.get("current") is not None:
        fields.append(
            {"title": "Current Value", "value": str(alert.details["current"]), "short": True}
        )
    if alert.details.get("threshold") is not None:
        fields.append(
            {"title": "Threshold", "value": str(alert.details["threshold"]), "short": True}
        )
    return {
        "color": SEVERITY_COLORS[AlertSeverity(alert.severity)],
        "title": f"{alert.severity.value.upper()}: {alert.title}",
        "text": alert.description,
        "fields": fields,
    }


def _dashboard_url(frontend_url: str, server_id: str, items: tuple[Alert, ...]) -> str:
    params = {"serverId": server_id}
    vhosts = Counter(a.vhost for a in items if a.vhost)
    if vhosts:
        # most_common keeps first-seen order on ties
        params["vhost"] = vhosts.most_common(1)[0][0]
    return f"{frontend_url.rstrip('/')}/alerts?{urlencode(params)}"


def build_message(payload: OutboundPayload, frontend_url: str | None = None) -> dict[str, Any]:
    """Render the composed payload as a Slack message."""
    summary = payload.summary
    if summary["critical"]:
        overall = AlertSeverity.CRITICAL
    elif summary["warning"]:
        overall = AlertSeverity.WARNING
    else:
        overall = AlertSeverity.INFO

    headline = (
        f"*{_plural(summary['total'], 'alert')}* detected on *{payload.source.name}* "
        f"in workspace *{payload.tenant.name}*"
    )
    breakdown = ", ".join(
        f"{summary[s.value]} {s.value}" for s in AlertSeverity if summary[s.value]
    )

    attachments = [{"color": SEVERITY_COLORS[overall], "title": headline, "text": breakdown, "fields": []}]
    attachments.extend(_alert_attachment(a) for a in payload.items[:MAX_ATTACHMENTS])
    hidden = len(payload.items) - MAX_ATTACHMENTS
    if hidden > 0:
        attachments.append(
            {"color": "#cccccc", "title": f"... and {_plural(hidden, 'more alert')}", "text": "", "fields": []}
        )

    blocks: list[dict[str, Any]] = []
    if frontend_url:
        blocks.append(
            {
                "type": "actions",
                "elements": [
                    {
                        "type": "button",
                        "text": {"type": "plain_text", "text": "View Alerts in Dashboard"},
                        "url": _dashboard_url(frontend_url, payload.source.id, payload.items),
                        "style": "primary",
                    }
                ],
            }
        )

    return {
        "text": headline,
        "username": "BrokerHooks Alerts",
        "icon_emoji": ":rabbit:",
        "blocks": blocks,
        "attachments": attachments,
    }


def serialize_message(payload: OutboundPayload, frontend_url: str | None = None) -> bytes:
    return json.dumps(build_message(payload, frontend_url), separators=(",", ":")).encode("utf-8")
