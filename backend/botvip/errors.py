"""Exception types shared across the bot, billing and access layers."""


class BotVipError(Exception):
    """Base class for all BOTVIP errors."""


class UpstreamUnavailable(BotVipError):
    """A payment-provider or messaging-transport call failed."""


class TelegramAPIError(UpstreamUnavailable):
    """The Telegram Bot API answered with ``ok: false`` or an HTTP error."""

    def __init__(self, method: str, description: str, error_code: int | None = None) -> None:
        self.method = method
        self.description = description
        self.error_code = error_code
        super().__init__(f"{method} failed ({error_code}): {description}")

    @property
    def is_blocked(self) -> bool:
        """True when the user blocked the bot or never started it."""
        return self.error_code == 403
