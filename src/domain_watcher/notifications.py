"""
Notification channels for domain reports.

Every channel implements the NotificationChannel protocol: a pure
validate() over its own settings, plus send_report() and send_test(),
which perform I/O and never raise (failures come back as an unsuccessful
SendResult). The orchestrator only knows this protocol; new channel kinds
are added to CHANNEL_TYPES.

Reports list three sections in a fixed order: expired-but-still-registered
(urgent), available, and expiring soon. Each section shows at most
MAX_DOMAINS_PER_SECTION names followed by an "... and N more" line.
"""

import html
import math
from abc import abstractmethod
from datetime import datetime
from typing import Callable, Optional, Protocol, runtime_checkable

import httpx

from .audit_logger import AuditLogger
from .enums import ChannelKind, LogLevel
from .models import DomainRecord, DomainReport, SendResult, format_timestamp
from .settings import ChannelSettings, ResendSettings, SlackSettings
from .store import utc_now


MAX_DOMAINS_PER_SECTION = 20
REPORT_TITLE = "Domain Watcher - Daily Report"

# (report attribute, title, urgent)
REPORT_SECTIONS = (
    ("expired", "🚨 Expired but Still Registered", True),
    ("available", "🟢 Available Domains", False),
    ("expiring", "⚠️ Expiring Soon", False),
)


def format_date(value: datetime) -> str:
    """Format a date like 'Mar 7, 2025'."""
    return f"{value:%b} {value.day}, {value.year}"


def days_until_expiry(expires: datetime, now: datetime) -> int:
    """Whole days until expiry, rounded up; negative once expired."""
    return math.ceil((expires - now).total_seconds() / 86400)


def describe_expiry(domain: DomainRecord, urgent: bool, now: datetime) -> str:
    """Expiry suffix for a report line, or '' when the expiry is unknown."""
    if domain.expires is None:
        return ""
    days = days_until_expiry(domain.expires, now)
    if urgent:
        return f" - expired {format_date(domain.expires)} ({abs(days)} days ago)"
    return f" - expires {format_date(domain.expires)} ({days} days)"


def report_sections(report: DomainReport) -> list[tuple[str, list[DomainRecord], bool]]:
    """Non-empty (title, domains, urgent) sections in report order."""
    sections = []
    for attribute, title, urgent in REPORT_SECTIONS:
        domains = getattr(report, attribute)
        if domains:
            sections.append((title, domains, urgent))
    return sections


def update_count_label(total: int) -> str:
    return f"{total} domain update{'' if total == 1 else 's'}"


@runtime_checkable
class NotificationChannel(Protocol):
    """Protocol defining the interface for notification channels."""

    kind: ChannelKind
    name: str
    settings_type: type

    @abstractmethod
    def validate(self, settings: ChannelSettings) -> bool:
        """Whether the settings carry the fields this channel needs. No I/O."""
        ...

    @abstractmethod
    async def send_report(self, settings: ChannelSettings, report: DomainReport) -> SendResult:
        """Render and deliver one report. Never raises."""
        ...

    @abstractmethod
    async def send_test(self, settings: ChannelSettings) -> SendResult:
        """Deliver a short connectivity test message. Never raises."""
        ...


class SlackChannel:
    """Chat channel posting Block Kit messages to an incoming webhook."""

    kind = ChannelKind.SLACK
    name = "Slack"
    settings_type = SlackSettings

    def __init__(
        self,
        simulation_mode: bool = False,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], datetime] = utc_now,
        logger: Optional[AuditLogger] = None,
    ) -> None:
        """
        Initialize Slack channel.

        Args:
            simulation_mode: If True, no real network requests are made
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (used by tests)
            clock: Source of the report date
            logger: Optional audit logger
        """
        self._simulation_mode = simulation_mode
        self._timeout = timeout
        self._transport = transport
        self._clock = clock
        self._logger = logger

    def validate(self, settings: ChannelSettings) -> bool:
        return isinstance(settings, SlackSettings) and bool(
            settings.webhook_url and settings.webhook_url.strip()
        )

    async def send_report(self, settings: ChannelSettings, report: DomainReport) -> SendResult:
        """Send the domain report to the configured webhook."""
        if not self.validate(settings):
            return SendResult(success=False, message="Webhook URL not configured")
        return await self._post(
            settings.webhook_url,  # type: ignore[attr-defined]
            self.format_message(report),
            "Domain report sent to Slack successfully",
        )

    async def send_test(self, settings: ChannelSettings) -> SendResult:
        if not self.validate(settings):
            return SendResult(success=False, message="Webhook URL not configured")
        message = {
            "text": "✅ Domain Watcher test message: your Slack notifications are connected.",
        }
        return await self._post(
            settings.webhook_url,  # type: ignore[attr-defined]
            message,
            "Test message sent to Slack successfully",
        )

    async def _post(self, url: str, payload: dict, success_message: str) -> SendResult:
        if self._simulation_mode:
            return SendResult(success=True, message=success_message, data={"simulated": True})

        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(url, json=payload)
        except Exception as e:
            self._log_error("Failed to send Slack notification", e)
            return SendResult(success=False, message=f"Network error: {e}")

        if response.is_success:
            self._log(LogLevel.INFO, success_message)
            return SendResult(success=True, message=success_message)

        self._log(
            LogLevel.ERROR,
            "Slack API error",
            {"response_status_code": response.status_code},
        )
        return SendResult(
            success=False,
            message=f"Slack API error: {response.status_code} - {response.text}",
        )

    def format_message(self, report: DomainReport) -> dict:
        """Format the report as Slack blocks."""
        now = self._clock()
        total = report.total_count

        blocks: list[dict] = [
            {
                "type": "header",
                "text": {"type": "plain_text", "text": f"{REPORT_TITLE} 🕵️"},
            },
            {
                "type": "context",
                "elements": [
                    {
                        "type": "mrkdwn",
                        "text": f"Date: {format_date(now)} • {update_count_label(total)}",
                    }
                ],
            },
        ]

        if total == 0:
            blocks.append({
                "type": "section",
                "text": {"type": "mrkdwn", "text": "🎉 All clear! No domain updates to report today."},
            })

        for title, domains, urgent in report_sections(report):
            blocks.append({"type": "divider"})
            blocks.append({
                "type": "section",
                "text": {"type": "mrkdwn", "text": f"*{title} ({len(domains)})*"},
            })
            lines = [
                f"• `{domain.name}`{describe_expiry(domain, urgent, now)}"
                for domain in domains[:MAX_DOMAINS_PER_SECTION]
            ]
            blocks.append({"type": "section", "text": {"type": "mrkdwn", "text": "\n".join(lines)}})

            if len(domains) > MAX_DOMAINS_PER_SECTION:
                blocks.append({
                    "type": "context",
                    "elements": [
                        {
                            "type": "mrkdwn",
                            "text": f"... and {len(domains) - MAX_DOMAINS_PER_SECTION} more",
                        }
                    ],
                })

        return {"text": f"🌐 Domain Watcher: {total} updates", "blocks": blocks}

    def _log(self, level: LogLevel, message: str, data: Optional[dict] = None) -> None:
        if self._logger:
            self._logger.log(level, "SlackChannel", message, data)

    def _log_error(self, message: str, error: BaseException) -> None:
        if self._logger:
            self._logger.log_error("SlackChannel", message, error)


class ResendChannel:
    """Email channel delivering HTML and plain-text reports through the Resend API."""

    kind = ChannelKind.RESEND
    name = "Resend"
    settings_type = ResendSettings

    API_URL = "https://api.resend.com/emails"

    def __init__(
        self,
        simulation_mode: bool = False,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], datetime] = utc_now,
        logger: Optional[AuditLogger] = None,
        api_url: str = API_URL,
    ) -> None:
        """
        Initialize Resend channel.

        Args:
            simulation_mode: If True, no real network requests are made
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (used by tests)
            clock: Source of the report date
            logger: Optional audit logger
            api_url: Email endpoint
        """
        self._simulation_mode = simulation_mode
        self._timeout = timeout
        self._transport = transport
        self._clock = clock
        self._logger = logger
        self._api_url = api_url

    def validate(self, settings: ChannelSettings) -> bool:
        return (
            isinstance(settings, ResendSettings)
            and bool(settings.api_key)
            and bool(settings.from_email)
            and bool(settings.to_email)
        )

    async def send_report(self, settings: ChannelSettings, report: DomainReport) -> SendResult:
        if not self.validate(settings):
            return SendResult(
                success=False,
                message="Resend API key or email addresses not configured",
            )
        subject, html_body, text_body = self.format_email(report)
        return await self._send(settings, subject, html_body, text_body)  # type: ignore[arg-type]

    async def send_test(self, settings: ChannelSettings) -> SendResult:
        if not self.validate(settings):
            return SendResult(
                success=False,
                message="Resend API key or email addresses not configured",
            )
        text_body = "Your Domain Watcher email notifications are connected."
        return await self._send(
            settings,  # type: ignore[arg-type]
            "✅ Domain Watcher test message",
            f"<p>{text_body}</p>",
            text_body,
        )

    async def _send(
        self, settings: ResendSettings, subject: str, html_body: str, text_body: str
    ) -> SendResult:
        if self._simulation_mode:
            return SendResult(
                success=True,
                message="Domain report sent via Resend successfully",
                data={"simulated": True},
            )

        payload = {
            "from": settings.from_email,
            "to": [settings.to_email],
            "subject": subject,
            "html": html_body,
            "text": text_body,
        }

        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(
                    self._api_url,
                    json=payload,
                    headers={"Authorization": f"Bearer {settings.api_key}"},
                )
        except httpx.ConnectError as e:
            self._log_error("Failed to connect to Resend API", e)
            return SendResult(
                success=False,
                message="Failed to connect to Resend API - check your internet connection",
            )
        except Exception as e:
            self._log_error("Failed to send Resend notification", e)
            return SendResult(success=False, message=f"Failed to send email: {e}")

        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        if not response.is_success:
            message = self.describe_api_error(body.get("message") or response.text)
            self._log(
                LogLevel.ERROR,
                "Resend email failed",
                {"response_status_code": response.status_code, "reason": message},
            )
            return SendResult(success=False, message=f"Resend API error: {message}")

        email_id = body.get("id")
        if not email_id:
            return SendResult(success=False, message="Email sent but response was unexpected")

        self._log(LogLevel.INFO, "Resend email sent", {"email_id": email_id})
        return SendResult(
            success=True,
            message="Domain report sent via Resend successfully",
            data={
                "email_id": email_id,
                "from": settings.from_email,
                "to": settings.to_email,
                "sent_at": format_timestamp(self._clock()),
            },
        )

    @staticmethod
    def describe_api_error(message: Optional[str]) -> str:
        """Turn a Resend error message into a short readable reason."""
        if not message:
            return "Unknown error occurred"
        lower = message.lower()
        if "api key" in lower:
            return "Invalid API key"
        if "rate limit" in lower:
            return "Rate limit exceeded"
        # Resend names the offending field; match it exactly.
        if "from_email" in message:
            return "Invalid 'from' email address"
        if "to_email" in message:
            return "Invalid 'to' email address"
        return message

    def format_email(self, report: DomainReport) -> tuple[str, str, str]:
        """
        Render the report as an email.

        Returns:
            Tuple of (subject, html body, text body)
        """
        now = self._clock()
        total = report.total_count
        subject = f"🌐 Domain Watcher Report - {total} updates need your attention!"
        header = f"Date: {format_date(now)} • {update_count_label(total)}"

        html_sections = []
        text_lines = [REPORT_TITLE, header, ""]

        for title, domains, urgent in report_sections(report):
            items = "".join(
                f"<li><strong>{html.escape(domain.name)}</strong>"
                f"{html.escape(describe_expiry(domain, urgent, now))}</li>"
                for domain in domains[:MAX_DOMAINS_PER_SECTION]
            )
            more = ""
            text_lines.append(f"{title} ({len(domains)})")
            text_lines.extend(
                f"- {domain.name}{describe_expiry(domain, urgent, now)}"
                for domain in domains[:MAX_DOMAINS_PER_SECTION]
            )
            if len(domains) > MAX_DOMAINS_PER_SECTION:
                remaining = len(domains) - MAX_DOMAINS_PER_SECTION
                more = f"<p><em>... and {remaining} more domains</em></p>"
                text_lines.append(f"... and {remaining} more domains")
            text_lines.append("")
            html_sections.append(
                f"<div><p><strong>{html.escape(title)} ({len(domains)})</strong></p>"
                f"<ul>{items}</ul>{more}</div>"
            )

        if total == 0:
            html_sections.append(
                "<div><p>🎉 All clear!</p><p>No domain updates to report today.</p></div>"
            )
            text_lines.extend(["🎉 All clear! No domain updates to report today.", ""])

        text_lines.append("This is an automated report from your Domain Watcher system")

        html_body = (
            "<!DOCTYPE html><html lang=\"en\"><head><meta charset=\"UTF-8\">"
            f"<title>{REPORT_TITLE}</title></head><body>"
            f"<h1>{REPORT_TITLE}</h1><p>{html.escape(header)}</p><hr/>"
            f"{''.join(html_sections)}"
            "<hr/><p>This is an automated report from your Domain Watcher system</p>"
            "</body></html>"
        )
        return subject, html_body, "\n".join(text_lines)

    def _log(self, level: LogLevel, message: str, data: Optional[dict] = None) -> None:
        if self._logger:
            self._logger.log(level, "ResendChannel", message, data)

    def _log_error(self, message: str, error: BaseException) -> None:
        if self._logger:
            self._logger.log_error("ResendChannel", message, error)


CHANNEL_TYPES = (SlackChannel, ResendChannel)


def create_channels(
    simulation_mode: bool = False,
    logger: Optional[AuditLogger] = None,
) -> list:
    """Instantiate every registered channel kind."""
    return [
        channel_type(simulation_mode=simulation_mode, logger=logger)
        for channel_type in CHANNEL_TYPES
    ]
