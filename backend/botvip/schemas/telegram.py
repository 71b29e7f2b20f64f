"""Pydantic v2 models for the parts of Telegram updates the bot reads."""

from pydantic import BaseModel, ConfigDict, Field


class _TelegramModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class TelegramUser(_TelegramModel):
    id: int
    is_bot: bool = False
    first_name: str = ""
    username: str | None = None


class Chat(_TelegramModel):
    id: int
    type: str  # private, group, supergroup, channel


class Message(_TelegramModel):
    message_id: int
    chat: Chat
    from_user: TelegramUser | None = Field(default=None, alias="from")
    text: str | None = None

    @property
    def command(self) -> tuple[str, str] | None:
        """Split ``/cmd@bot payload`` into ``("cmd", "payload")``."""
        if not self.text or not self.text.startswith("/"):
            return None
        head, _, payload = self.text.partition(" ")
        return head[1:].split("@", 1)[0].lower(), payload.strip()


class CallbackQuery(_TelegramModel):
    id: str
    from_user: TelegramUser = Field(alias="from")
    message: Message | None = None
    data: str | None = None


class Update(_TelegramModel):
    update_id: int
    message: Message | None = None
    callback_query: CallbackQuery | None = None
