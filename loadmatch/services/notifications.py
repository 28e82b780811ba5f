from __future__ import annotations

import logging
from typing import Callable, Dict, List, Optional, Protocol

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from loadmatch.core.config import get_settings
from loadmatch.models.matching import CompanyMatchingSettings
from loadmatch.services.event_dispatcher import Event, EventType, subscribe

logger = logging.getLogger(__name__)

# Channels used for each company notification preference. Email digests are
# assembled elsewhere; here they only leave an in-app record.
PREFERENCE_CHANNELS: Dict[str, List[str]] = {
    "disabled": [],
    "dashboard_only": ["in_app"],
    "email_digest": ["in_app"],
    "push_and_dashboard": ["in_app", "slack"],
}
DEFAULT_PREFERENCE = "push_and_dashboard"


class NotificationResult:
    def __init__(self, success: bool, detail: str = "") -> None:
        self.success = success
        self.detail = detail


class NotificationSender(Protocol):
    async def send(self, recipient: str, subject: str, body: str) -> NotificationResult:
        ...


class SlackSender:
    def __init__(self, webhook_url: Optional[str] = None, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.webhook_url = webhook_url
        self.transport = transport

    async def send(self, recipient: str, subject: str, body: str) -> NotificationResult:
        webhook = self.webhook_url or get_settings().slack_webhook_url
        if not webhook:
            return NotificationResult(False, "Slack webhook not configured")

        payload = {"text": f"*{subject}*\n{body}"}
        async with httpx.AsyncClient(transport=self.transport) as client:
            response = await client.post(webhook, json=payload, timeout=10)
        if response.status_code in (200, 204):
            return NotificationResult(True, "Slack webhook accepted message")
        logger.error("Slack webhook failed", extra={"status": response.status_code, "body": response.text})
        return NotificationResult(False, f"Slack failure: {response.text}")


class InAppSender:
    def __init__(self) -> None:
        self.sent: List[Dict[str, str]] = []

    async def send(self, recipient: str, subject: str, body: str) -> NotificationResult:
        self.sent.append({"recipient": recipient, "subject": subject, "body": body})
        logger.info("In-app notification recorded", extra={"recipient": recipient, "subject": subject})
        return NotificationResult(True, "Recorded in notification log")


def build_channel_registry() -> Dict[str, NotificationSender]:
    return {
        "slack": SlackSender(),
        "in_app": InAppSender(),
    }


class ClaimNotifier:
    """Fans a claimed suggestion out to the channels its company asked for."""

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        channels: Dict[str, NotificationSender] | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.channels = channels if channels is not None else build_channel_registry()

    async def __call__(self, event: Event) -> List[NotificationResult]:
        preference = await self._preference(event.company_id)
        channel_names = PREFERENCE_CHANNELS.get(preference, PREFERENCE_CHANNELS[DEFAULT_PREFERENCE])
        if not channel_names:
            logger.debug("claim_notification_disabled", extra={"company_id": event.company_id})
            return []

        data = event.data
        subject = "Load suggestion claimed"
        body = (
            f"Load {data.get('load_id')} was claimed for trip {data.get('trip_id')} "
            f"(score {data.get('match_score')}, est. profit ${data.get('profit_estimate')})"
        )
        recipient = event.owner_id or event.company_id or ""

        results: List[NotificationResult] = []
        for name in channel_names:
            sender = self.channels.get(name)
            if sender is None:
                continue
            try:
                result = await sender.send(recipient, subject, body)
            except httpx.HTTPError as exc:
                logger.error(
                    "claim_notification_failed",
                    extra={"channel": name, "suggestion_id": data.get("suggestion_id"), "error": str(exc)},
                )
                result = NotificationResult(False, f"{name} failure: {exc}")
            results.append(result)
        return results

    async def _preference(self, company_id: Optional[str]) -> str:
        if not company_id:
            return DEFAULT_PREFERENCE
        async with self.session_factory() as session:
            result = await session.execute(
                select(CompanyMatchingSettings.notification_preference).where(
                    CompanyMatchingSettings.company_id == company_id
                )
            )
            return result.scalar_one_or_none() or DEFAULT_PREFERENCE


def register_notification_handlers(
    session_factory: Callable[[], AsyncSession],
    channels: Dict[str, NotificationSender] | None = None,
) -> ClaimNotifier:
    notifier = ClaimNotifier(session_factory, channels)
    subscribe(EventType.SUGGESTION_CLAIMED, notifier)
    return notifier
