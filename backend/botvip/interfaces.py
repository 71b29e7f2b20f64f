"""Collaborator contracts the core depends on.

The reconciler, access engine and follow-up scheduler only talk to the
outside world through these protocols, so tests can hand them fakes.
"""

from typing import Any, Protocol


class MessagingTransport(Protocol):
    """Outbound chat primitives (implemented by ``TelegramClient``)."""

    async def send_message(
        self,
        chat_id: str,
        text: str,
        reply_markup: dict[str, Any] | None = None,
        parse_mode: str | None = None,
    ) -> dict[str, Any]: ...

    async def create_single_use_invite(self, channel_id: str, ttl_seconds: int) -> str: ...

    async def ban_then_unban(self, channel_id: str, user_id: str) -> None: ...

    async def get_chat_type(self, chat_id: str) -> str | None: ...


class PaymentProvider(Protocol):
    """Payment-side primitives (implemented by ``StripeGateway``)."""

    async def create_checkout_session(self, params: dict[str, Any]) -> Any: ...

    def construct_event(self, payload: bytes, sig_header: str) -> Any: ...

    async def retrieve_subscription(self, subscription_id: str) -> Any: ...
