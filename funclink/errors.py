"""Exception hierarchy for funclink.

Each exception carries the error kind reported back to callers in result
envelopes and activity events.
"""


class FuncLinkError(Exception):
    """Base exception for funclink."""

    kind = "Error"


class NotFoundError(FuncLinkError):
    """An assistant, function or channel is missing."""

    kind = "NotFound"


class NoChannelConfiguredError(NotFoundError):
    """Neither the link nor the function names a notification channel."""


class ChannelNotFoundError(NotFoundError):
    """The configured notification channel does not exist."""


class InvalidConfigurationError(FuncLinkError):
    """Channel settings are incomplete or unusable."""

    kind = "InvalidConfiguration"


class UnsupportedChannelTypeError(InvalidConfigurationError):
    """The channel type has no delivery implementation."""


class RemoteApiError(FuncLinkError):
    """Transport, auth or rate-limit failure from a remote service."""

    kind = "RemoteApiFailure"


class ToolApiError(RemoteApiError):
    """The remote assistant API rejected or failed a request."""


class TelegramDeliveryError(RemoteApiError):
    """The Telegram Bot API refused a message."""


class ChatNotFoundError(TelegramDeliveryError):
    pass


class BotBlockedError(TelegramDeliveryError):
    pass


class InvalidBotTokenError(TelegramDeliveryError):
    pass


class MailDeliveryError(RemoteApiError):
    """The SMTP server refused or dropped a message."""
