"""Chat front-end — commands and inline-keyboard callbacks."""

import logging
from pathlib import Path
from typing import Any

from botvip import messages
from botvip.billing.access import format_epoch
from botvip.billing.checkout import CheckoutSessionFactory
from botvip.billing.plans import available_plans, get_plan
from botvip.errors import UpstreamUnavailable
from botvip.schemas.telegram import CallbackQuery, Message, Update
from botvip.services.followup import FollowUpScheduler
from botvip.services.ledger import SubscriberLedger
from botvip.telegram.client import TelegramClient

logger = logging.getLogger(__name__)


def main_menu_keyboard() -> dict[str, Any]:
    return {
        "inline_keyboard": [
            [{"text": "💳 Ver Planos", "callback_data": "ver_planos"}],
            [{"text": "❓ Ajuda", "callback_data": "ajuda"}],
            [{"text": "🛠 Suporte", "callback_data": "suporte"}],
        ]
    }


def plans_keyboard() -> dict[str, Any]:
    return {
        "inline_keyboard": [
            [{"text": plan.button_text, "callback_data": plan.key}] for plan in available_plans()
        ]
    }


class BotHandlers:
    """Route Telegram updates to replies.

    Thin by design: checkout goes through the session factory, entitlement
    comes from the ledger, and follow-ups through the scheduler.
    """

    def __init__(
        self,
        telegram: TelegramClient,
        ledger: SubscriberLedger,
        checkout: CheckoutSessionFactory,
        scheduler: FollowUpScheduler,
        support_handle: str = "",
        welcome_photo: Path | None = None,
        welcome_audio: Path | None = None,
    ) -> None:
        self._telegram = telegram
        self._ledger = ledger
        self._checkout = checkout
        self._scheduler = scheduler
        self._support_handle = support_handle
        self._welcome_photo = welcome_photo
        self._welcome_audio = welcome_audio
        self._commands = {
            "start": self.cmd_start,
            "planos": self.cmd_plans,
            "vip": self.cmd_vip,
            "conteudo": self.cmd_protected,
            "help": self.cmd_help,
            "ajuda": self.cmd_help,
        }

    async def handle_update(self, update: Update) -> None:
        try:
            if update.callback_query is not None:
                await self.handle_callback(update.callback_query)
            elif update.message is not None and update.message.command is not None:
                await self.handle_command(update.message)
        except UpstreamUnavailable as e:
            logger.warning("Telegram call failed while handling update %s: %s", update.update_id, e)

    async def handle_command(self, message: Message) -> None:
        name, payload = message.command
        handler = self._commands.get(name)
        if handler is None:
            logger.debug("Ignoring unknown command /%s", name)
            return
        await handler(message, payload)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def cmd_start(self, message: Message, payload: str) -> None:
        chat_id = str(message.chat.id)
        if payload == "sucesso":
            await self._telegram.send_message(chat_id, messages.CHECKOUT_SUCCESS_RETURN)
            return
        if payload == "cancelado":
            await self._telegram.send_message(
                chat_id, messages.CHECKOUT_CANCEL_RETURN, reply_markup=plans_keyboard()
            )
            return

        await self._send_media(chat_id)
        await self._telegram.send_message(chat_id, messages.WELCOME, parse_mode="Markdown")
        await self._telegram.send_message(chat_id, messages.MAIN_MENU, reply_markup=main_menu_keyboard())

        if message.chat.type == "private" and message.from_user is not None:
            await self._scheduler.start(str(message.from_user.id))

    async def cmd_plans(self, message: Message, payload: str = "") -> None:
        await self._send_plans(str(message.chat.id))

    async def cmd_vip(self, message: Message, payload: str = "") -> None:
        chat_id = str(message.chat.id)
        user_id = str(message.from_user.id) if message.from_user else chat_id
        record = await self._ledger.get(user_id)
        if record is None or not record.is_entitled(self._ledger.now()):
            await self._telegram.send_message(chat_id, messages.VIP_INACTIVE)
            return
        until = ""
        if record.period_end_epoch is not None:
            until = messages.VIP_ACTIVE_UNTIL.format(date=format_epoch(record.period_end_epoch))
        await self._telegram.send_message(chat_id, messages.VIP_ACTIVE.format(until=until))

    async def cmd_protected(self, message: Message, payload: str = "") -> None:
        chat_id = str(message.chat.id)
        user_id = str(message.from_user.id) if message.from_user else chat_id
        if await self._ledger.is_entitled(user_id):
            await self._telegram.send_message(chat_id, messages.PROTECTED_CONTENT)
        else:
            await self._telegram.send_message(
                chat_id, messages.PROTECTED_DENIED, reply_markup=plans_keyboard()
            )

    async def cmd_help(self, message: Message, payload: str = "") -> None:
        await self._telegram.send_message(str(message.chat.id), messages.HELP)

    # ------------------------------------------------------------------
    # Callbacks
    # ------------------------------------------------------------------

    async def handle_callback(self, query: CallbackQuery) -> None:
        try:
            await self._telegram.answer_callback_query(query.id)
        except UpstreamUnavailable as e:
            logger.debug("answerCallbackQuery failed: %s", e)

        data = query.data or ""
        chat_id = str(query.message.chat.id) if query.message else str(query.from_user.id)
        user_id = str(query.from_user.id)

        if data == "ver_planos":
            await self._send_plans(chat_id)
        elif data == "ajuda":
            await self._telegram.send_message(chat_id, messages.HELP)
        elif data == "suporte":
            await self._telegram.send_message(
                chat_id, messages.SUPPORT.format(support_handle=self._support_handle)
            )
        elif get_plan(data) is not None:
            await self._send_checkout(chat_id, user_id, data)
        else:
            await self._telegram.send_message(chat_id, messages.UNKNOWN_OPTION)

    async def _send_plans(self, chat_id: str) -> None:
        if not available_plans():
            logger.warning("No plan price IDs configured (PLANO_1..3)")
            await self._telegram.send_message(chat_id, messages.NO_PLANS)
            return
        await self._telegram.send_message(chat_id, messages.CHOOSE_PLAN, reply_markup=plans_keyboard())

    async def _send_checkout(self, chat_id: str, user_id: str, plan_key: str) -> None:
        plan = get_plan(plan_key)
        if plan is None or not plan.price_id:
            logger.warning("Plan %s selected but has no price ID configured", plan_key)
            await self._telegram.send_message(chat_id, messages.PLAN_NOT_FOUND)
            return

        try:
            session = await self._checkout.create_checkout_session(user_id, plan.price_id, plan.mode)
        except UpstreamUnavailable:
            await self._telegram.send_message(
                chat_id,
                messages.CHECKOUT_FAILED,
                reply_markup={
                    "inline_keyboard": [[{"text": messages.RETRY_BUTTON, "callback_data": plan.key}]]
                },
            )
            return

        await self._telegram.send_message(
            chat_id,
            messages.CHECKOUT_LINK,
            reply_markup={"inline_keyboard": [[{"text": messages.CHECKOUT_BUTTON, "url": session.url}]]},
        )
        if chat_id == user_id:
            await self._scheduler.start(user_id)

    async def _send_media(self, chat_id: str) -> None:
        """Send the welcome photo and audio when the files exist; never fatal."""
        for path, send, caption in (
            (self._welcome_photo, self._telegram.send_photo, messages.WELCOME_PHOTO_CAPTION),
            (self._welcome_audio, self._telegram.send_audio, None),
        ):
            if path is None:
                continue
            if not path.is_file():
                logger.info("Welcome asset %s not found, skipping", path)
                continue
            try:
                await send(chat_id, path, caption=caption)
            except (UpstreamUnavailable, OSError) as e:
                logger.warning("Failed to send media %s: %s", path, e)
