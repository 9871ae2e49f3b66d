"""Delivery of resolved function calls to notification channels."""

from __future__ import annotations

import html
import json
import logging
from typing import Any

from funclink.activity import ActivityLog
from funclink.channels.email import SmtpSettings, SmtpTransport
from funclink.channels.telegram import TelegramTransport
from funclink.config import Settings
from funclink.db import Database
from funclink.errors import (
    ChannelNotFoundError,
    FuncLinkError,
    InvalidConfigurationError,
    NoChannelConfiguredError,
    UnsupportedChannelTypeError,
)
from funclink.models import ChannelType, DispatchResult, FunctionAssistantLink, FunctionDefinition, NotificationChannel

LOGGER = logging.getLogger(__name__)

NO_DATA_PLACEHOLDER = "No data"

_EMAIL_TEMPLATE = """\
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">
  <h3>{title}</h3>
  <pre style="background-color: #f5f5f5; padding: 15px; border-radius: 4px; white-space: pre-wrap;">{body}</pre>
</div>
"""


def format_arguments(arguments: Any) -> str:
    """Render call arguments as ``key: value`` lines; never returns an empty string."""

    lines: list[str] = []
    if isinstance(arguments, dict):
        lines.extend(_format_pairs(arguments))
    elif isinstance(arguments, list):
        for item in arguments:
            lines.extend(_format_pairs(item) if isinstance(item, dict) else [_render(item)])
    elif arguments is not None:
        lines.append(_render(arguments))
    text = "\n".join(line for line in lines if line.strip())
    return text if text.strip() else NO_DATA_PLACEHOLDER


def _format_pairs(pairs: dict[str, Any]) -> list[str]:
    lines = []
    for key, value in pairs.items():
        if isinstance(value, list) and value and all(isinstance(item, dict) for item in value):
            lines.append(f"{key}:")
            for item in value:
                lines.extend(_format_pairs(item))
        else:
            lines.append(f"{key}: {_render(value)}")
    return lines


def _render(value: Any) -> str:
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    if value is None:
        return ""
    return str(value)


class ChannelDispatcher:
    """Formats call arguments and sends them through the effective channel.

    One attempt per call: no retry and no queue. Every attempt, successful or
    not, leaves one activity event.
    """

    def __init__(
        self,
        db: Database,
        telegram: TelegramTransport,
        mailer: SmtpTransport,
        activity: ActivityLog,
        settings: Settings | None = None,
    ) -> None:
        self._db = db
        self._telegram = telegram
        self._mailer = mailer
        self._activity = activity
        self._settings = settings

    async def dispatch(
        self,
        link: FunctionAssistantLink,
        function: FunctionDefinition,
        arguments: dict[str, Any],
    ) -> DispatchResult:
        channel_id = link.notification_channel_id or function.default_channel_id
        channel: NotificationChannel | None = None
        try:
            if not channel_id:
                raise NoChannelConfiguredError(f"No notification channel configured for function {function.name!r}")
            channel = self._db.get_channel(channel_id)
            if channel is None:
                raise ChannelNotFoundError(f"Notification channel {channel_id} not found")
            if channel.status != "active":
                raise InvalidConfigurationError(f"Notification channel {channel_id} is {channel.status}")
            if not isinstance(channel.settings, dict):
                raise InvalidConfigurationError(f"Notification channel {channel_id} has unreadable settings")
            if not link.channel_enabled:
                LOGGER.info("Channel delivery disabled for link %s, call acknowledged without sending", link.id)
                result = DispatchResult(success=True, data="Call received; channel delivery is disabled")
            else:
                text = format_arguments(arguments)
                result = await self._deliver(channel, function, text)
        except FuncLinkError as exc:
            LOGGER.warning("Dispatch of %r failed (%s): %s", function.name, exc.kind, exc)
            result = DispatchResult(success=False, error=str(exc), error_kind=exc.kind)
        except Exception as exc:  # noqa: BLE001
            LOGGER.exception("Dispatch of %r failed unexpectedly", function.name)
            result = DispatchResult(success=False, error=str(exc) or type(exc).__name__)

        if result.delivered:
            self._db.touch_channel(channel.id)
            self._db.touch_link(link.id)
            action = "function_data_sent"
        elif result.success:
            action = "function_channel_disabled"
        else:
            action = "function_delivery_failed"
        self._activity.record(
            action,
            link.assistant_id,
            functionId=function.id,
            functionName=function.name,
            channelId=channel_id,
            channelType=channel.type if channel else None,
            delivered=result.delivered,
            error=result.error,
            errorKind=result.error_kind,
        )
        return result

    async def _deliver(self, channel: NotificationChannel, function: FunctionDefinition, text: str) -> DispatchResult:
        if channel.type == ChannelType.TELEGRAM:
            return await self._send_telegram(channel, text)
        if channel.type == ChannelType.EMAIL:
            return await self._send_email(channel, function, text)
        raise UnsupportedChannelTypeError(f"Unsupported channel type: {channel.type}")

    async def _send_telegram(self, channel: NotificationChannel, text: str) -> DispatchResult:
        bot_token = channel.settings.get("botToken")
        chat_id = channel.settings.get("chatId")
        if not bot_token:
            raise InvalidConfigurationError(f"Telegram channel {channel.id} has no bot token")
        if not chat_id:
            raise InvalidConfigurationError(f"Telegram channel {channel.id} has no chat id")
        await self._telegram.send_message(bot_token, chat_id, text)
        return DispatchResult(success=True, data="Data sent to Telegram", delivered=True)

    async def _send_email(
        self, channel: NotificationChannel, function: FunctionDefinition, text: str
    ) -> DispatchResult:
        recipient = str(channel.settings.get("email") or "").strip()
        if "@" not in recipient:
            raise InvalidConfigurationError(f"Email channel {channel.id} has no valid recipient address")
        smtp = self._smtp_settings(channel)
        if not smtp.host or not smtp.sender:
            raise InvalidConfigurationError(f"Email channel {channel.id} has no SMTP host or sender")

        subject = channel.settings.get("subject") or f"Function call: {function.name}"
        body = _EMAIL_TEMPLATE.format(title=html.escape(function.name), body=html.escape(text))
        message_id = await self._mailer.send_mail(smtp, recipient, subject, body, text)
        return DispatchResult(success=True, data=f"Data sent to {recipient} ({message_id})", delivered=True)

    def _smtp_settings(self, channel: NotificationChannel) -> SmtpSettings:
        own = channel.settings
        if own.get("smtpHost"):
            return SmtpSettings(
                host=own["smtpHost"],
                port=_smtp_port(channel),
                username=own.get("username") or "",
                password=own.get("password") or "",
                security=own.get("security") or "ssl",
                from_address=own.get("fromEmail") or "",
                sender_name=own.get("senderName") or "funclink",
            )
        if self._settings is None:
            return SmtpSettings(host="")
        return SmtpSettings(
            host=self._settings.smtp_host,
            port=self._settings.smtp_port,
            username=self._settings.smtp_user,
            password=self._settings.smtp_password,
            security=self._settings.smtp_security,
            from_address=self._settings.smtp_from,
            sender_name=self._settings.email_sender_name,
        )


def _smtp_port(channel: NotificationChannel) -> int:
    raw = channel.settings.get("smtpPort") or 465
    try:
        port = int(raw)
    except (TypeError, ValueError):
        raise InvalidConfigurationError(f"Email channel {channel.id} has an invalid SMTP port {raw!r}") from None
    if not 0 < port < 65536:
        raise InvalidConfigurationError(f"Email channel {channel.id} has an invalid SMTP port {raw!r}")
    return port
