from __future__ import annotations

import logging
from typing import Any, Optional, Protocol

import httpx

from debt_scheduler.core.settlement.models import DebtSummary
from debt_scheduler.utils.exceptions import NotificationException

logger = logging.getLogger(__name__)


class DebtSummaryNotifier(Protocol):
    async def post_debt_summary(self, summary: DebtSummary) -> None: ...


def _raw_text(value: str) -> dict[str, Any]:
    return {"type": "raw_text", "text": value}


def build_table(header: str, table_headers: list[str], table_values: list[str]) -> dict[str, Any]:
    """Slack block-kit message: a header block followed by a two-row table."""
    return {
        "blocks": [
            {
                "type": "header",
                "text": {"type": "plain_text", "text": header, "emoji": True},
            },
            {
                "type": "table",
                "column_settings": [{"is_wrapped": True, "align": "right"}],
                "rows": [
                    [_raw_text(h) for h in table_headers],
                    [_raw_text(v) for v in table_values],
                ],
            },
        ]
    }


class SlackNotifier:
    """Posts sweep summaries to a Slack incoming webhook.

    Delivery is fire-and-forget: failures are logged and never reach the
    worker that asked for the post.
    """

    def __init__(
        self,
        *,
        webhook_url: str,
        timeout_seconds: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._webhook_url = (webhook_url or "").strip()
        self._client = httpx.AsyncClient(timeout=timeout_seconds, transport=transport)

    @classmethod
    def from_settings(cls, settings: Any) -> "SlackNotifier":
        return cls(webhook_url=settings.SLACK_WEBHOOK_URL, timeout_seconds=settings.SLACK_TIMEOUT_SECONDS)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _send(self, message: dict[str, Any]) -> None:
        if not self._webhook_url:
            raise NotificationException("SLACK_WEBHOOK_URL is not set")
        try:
            response = await self._client.post(
                self._webhook_url, json=message, headers={"Accept": "application/json"}
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise NotificationException(
                f"Slack webhook post failed: {exc}", details={"error": exc.__class__.__name__}
            ) from exc

    async def post_table(self, header: str, table_headers: list[str], table_values: list[str]) -> bool:
        try:
            await self._send(build_table(header, table_headers, table_values))
        except NotificationException as exc:
            logger.warning("notify.slack_failed header=%r err=%s", header, exc.message)
            return False
        return True

    async def post_debt_summary(self, summary: DebtSummary) -> None:
        delivered = await self.post_table(
            "Total Debt Collection",
            ["Total Paid", "Total Debt", "Total Insufficient Funds Count"],
            [str(summary.total_paid), str(summary.total_debt), str(summary.insufficient_funds_count)],
        )
        if delivered:
            logger.info(
                "notify.debt_summary_posted total_debt=%s total_paid=%s insufficient_funds=%s",
                summary.total_debt,
                summary.total_paid,
                summary.insufficient_funds_count,
            )
