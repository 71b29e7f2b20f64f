"""Operations audit channel — best-effort messages to the logs chat."""

import logging

from botvip.errors import UpstreamUnavailable
from botvip.interfaces import MessagingTransport

logger = logging.getLogger(__name__)


class OpsNotifier:
    """Send audit lines to the configured Telegram logs chat.

    Failures are logged and swallowed: an audit message must never fail the
    operation it reports on.
    """

    def __init__(self, messenger: MessagingTransport, chat_id: str | None) -> None:
        self._messenger = messenger
        self._chat_id = chat_id or None
        if self._chat_id is None:
            logger.info("LOGS_CHAT_ID not configured; ops audit goes to the log only")

    @property
    def enabled(self) -> bool:
        return self._chat_id is not None

    async def notify(self, text: str) -> bool:
        logger.info("[ops] %s", text)
        if self._chat_id is None:
            return False
        try:
            await self._messenger.send_message(self._chat_id, text)
        except UpstreamUnavailable as e:
            logger.warning("Failed to deliver ops notification: %s", e)
            return False
        return True
