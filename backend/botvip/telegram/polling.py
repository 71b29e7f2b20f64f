"""Long-polling loop for Telegram updates (used when no public URL is set)."""

import asyncio
import logging

from pydantic import ValidationError

from botvip.errors import UpstreamUnavailable
from botvip.schemas.telegram import Update
from botvip.telegram.client import TelegramClient
from botvip.telegram.handlers import BotHandlers

logger = logging.getLogger(__name__)


async def run_polling(
    telegram: TelegramClient,
    handlers: BotHandlers,
    timeout: int = 30,
    retry_delay: float = 5.0,
) -> None:
    """Fetch updates forever and hand each one to ``handlers``.

    Runs until cancelled. Transport errors back off and retry; a single bad
    update is logged and skipped.
    """
    offset: int | None = None
    logger.info("Starting Telegram long polling")
    while True:
        try:
            updates = await telegram.get_updates(offset=offset, timeout=timeout)
        except UpstreamUnavailable as e:
            logger.warning("getUpdates failed: %s; retrying in %.0fs", e, retry_delay)
            await asyncio.sleep(retry_delay)
            continue

        for raw in updates:
            offset = raw["update_id"] + 1
            try:
                update = Update.model_validate(raw)
            except ValidationError:
                logger.exception("Skipping malformed update %s", raw.get("update_id"))
                continue
            try:
                await handlers.handle_update(update)
            except Exception:
                logger.exception("Error handling update %s", update.update_id)
