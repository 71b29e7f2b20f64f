"""Re-engagement scheduler — delayed nudges for users who did not buy.

Each user has at most one chain. A chain walks through up to three armed
steps; every step sleeps, re-checks the ledger and only then sends. The
chain ends as ``completed`` after the last step or ``cancelled`` when the
user converts, blocks the bot, or a cancel is requested.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum

from botvip import messages
from botvip.errors import TelegramAPIError, UpstreamUnavailable
from botvip.interfaces import MessagingTransport

logger = logging.getLogger(__name__)

EntitlementCheck = Callable[[str], Awaitable[bool]]
LinkFactory = Callable[[str], Awaitable[str | None]]


class ChainState(str, Enum):
    IDLE = "idle"
    STEP1_ARMED = "step1_armed"
    STEP2_ARMED = "step2_armed"
    STEP3_ARMED = "step3_armed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


ARMED_STATES = (ChainState.STEP1_ARMED, ChainState.STEP2_ARMED, ChainState.STEP3_ARMED)
MAX_STEPS = len(ARMED_STATES)


@dataclass(frozen=True)
class FollowUpStep:
    """Wait ``delay_seconds`` after the previous step, then send ``text``."""

    delay_seconds: float
    text: str


def default_steps(
    first_delay_seconds: float, interval_seconds: float, max_sends: int = MAX_STEPS
) -> list[FollowUpStep]:
    """5 minutes, then one day, then another day (message A, B, A)."""
    steps = [
        FollowUpStep(first_delay_seconds, messages.FOLLOWUP_A),
        FollowUpStep(interval_seconds, messages.FOLLOWUP_B),
        FollowUpStep(interval_seconds, messages.FOLLOWUP_A),
    ]
    return steps[:max_sends]


@dataclass
class FollowUpChain:
    """In-memory state of one user's chain."""

    user_id: str
    started_at: float
    state: ChainState = ChainState.IDLE
    sent_count: int = 0
    task: asyncio.Task | None = field(default=None, repr=False)


class FollowUpScheduler:
    """Owns every pending chain, keyed by Telegram user id."""

    def __init__(
        self,
        messenger: MessagingTransport,
        is_entitled: EntitlementCheck,
        steps: Sequence[FollowUpStep],
        link_factory: LinkFactory | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if len(steps) > MAX_STEPS:
            raise ValueError(f"A follow-up chain has at most {MAX_STEPS} steps")
        self._messenger = messenger
        self._is_entitled = is_entitled
        self._steps = list(steps)
        self._link_factory = link_factory
        self._clock = clock
        self._chains: dict[str, FollowUpChain] = {}

    def get(self, user_id: str) -> FollowUpChain | None:
        return self._chains.get(str(user_id))

    def active_users(self) -> list[str]:
        return list(self._chains)

    async def start(self, user_id: str) -> bool:
        """Arm a chain for ``user_id``, replacing any pending one.

        Only private chats are armed. An unknown chat type or a failed
        lookup leaves the user alone.
        """
        user_id = str(user_id)
        if not self._steps:
            return False

        try:
            chat_type = await self._messenger.get_chat_type(user_id)
        except UpstreamUnavailable as e:
            logger.warning("Not arming follow-ups for %s: chat lookup failed (%s)", user_id, e)
            return False
        if chat_type != "private":
            logger.info("Not arming follow-ups for %s: chat type is %s", user_id, chat_type)
            return False

        try:
            entitled = await self._is_entitled(user_id)
        except Exception:
            logger.exception("Not arming follow-ups for %s: entitlement check failed", user_id)
            return False
        if entitled:
            self.cancel(user_id)
            logger.info("Not arming follow-ups for %s: already entitled", user_id)
            return False

        # Replace without yielding so two chains never coexist
        self.cancel(user_id)
        chain = FollowUpChain(user_id=user_id, started_at=self._clock(), state=ARMED_STATES[0])
        chain.task = asyncio.create_task(self._run(chain), name=f"followup-{user_id}")
        self._chains[user_id] = chain
        logger.info(
            "Follow-ups armed for %s (%s)",
            user_id,
            ", ".join(f"+{step.delay_seconds:g}s" for step in self._steps),
        )
        return True

    def cancel(self, user_id: str) -> bool:
        """Cancel the user's pending chain. Returns False if none was pending."""
        chain = self._chains.pop(str(user_id), None)
        if chain is None:
            return False
        chain.state = ChainState.CANCELLED
        if chain.task is not None and chain.task is not asyncio.current_task():
            chain.task.cancel()
        logger.info("Follow-ups cancelled for %s", user_id)
        return True

    async def shutdown(self) -> None:
        """Cancel every chain and wait for the tasks to unwind."""
        tasks = [chain.task for chain in self._chains.values() if chain.task is not None]
        for user_id in list(self._chains):
            self.cancel(user_id)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _run(self, chain: FollowUpChain) -> None:
        try:
            for index, step in enumerate(self._steps):
                chain.state = ARMED_STATES[index]
                await asyncio.sleep(step.delay_seconds)

                try:
                    entitled = await self._is_entitled(chain.user_id)
                except Exception:
                    logger.exception("Entitlement check failed for %s; skipping nudge", chain.user_id)
                    continue
                if entitled:
                    logger.info("User %s converted; dropping follow-up chain", chain.user_id)
                    chain.state = ChainState.CANCELLED
                    return

                if not await self._send_nudge(chain, step):
                    chain.state = ChainState.CANCELLED
                    return

            chain.state = ChainState.COMPLETED
            logger.info("Follow-up chain for %s completed (%d sent)", chain.user_id, chain.sent_count)
        except asyncio.CancelledError:
            chain.state = ChainState.CANCELLED
            raise
        finally:
            if self._chains.get(chain.user_id) is chain:
                del self._chains[chain.user_id]

    async def _send_nudge(self, chain: FollowUpChain, step: FollowUpStep) -> bool:
        """Send one nudge. Returns False when the chain should stop."""
        url = None
        if self._link_factory is not None:
            try:
                url = await self._link_factory(chain.user_id)
            except UpstreamUnavailable as e:
                logger.warning("No checkout link for follow-up to %s: %s", chain.user_id, e)
            except Exception:
                logger.exception("Checkout link factory failed for follow-up to %s", chain.user_id)

        if url:
            button = {"text": messages.FOLLOWUP_BUTTON, "url": url}
        else:
            button = {"text": messages.FOLLOWUP_BUTTON, "callback_data": "ver_planos"}

        try:
            await self._messenger.send_message(
                chain.user_id, step.text, reply_markup={"inline_keyboard": [[button]]}
            )
        except TelegramAPIError as e:
            if e.is_blocked:
                logger.info("User %s blocked the bot; stopping follow-ups", chain.user_id)
                return False
            logger.warning("Follow-up send to %s failed: %s", chain.user_id, e)
            return True
        except UpstreamUnavailable as e:
            logger.warning("Follow-up send to %s failed: %s", chain.user_id, e)
            return True

        chain.sent_count += 1
        return True
