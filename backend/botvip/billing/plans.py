"""Plan definitions — the VIP offers sold through Stripe Checkout."""

from dataclasses import dataclass

from botvip.config import settings


@dataclass(frozen=True)
class Plan:
    """A purchasable VIP plan."""

    key: str  # callback_data used by the inline keyboard
    display_name: str
    emoji: str
    mode: str  # Stripe Checkout mode: "subscription" or "payment" (one-off, no expiry)
    price_id: str | None  # None until configured in the environment

    @property
    def button_text(self) -> str:
        return f"{self.emoji} {self.display_name}"


PLANS: dict[str, Plan] = {
    "plano_semanal": Plan(
        key="plano_semanal",
        display_name="Plano Semanal",
        emoji="💎",
        mode="subscription",
        price_id=settings.plan_weekly_price_id or None,
    ),
    "plano_mensal": Plan(
        key="plano_mensal",
        display_name="Plano Mensal",
        emoji="🔥",
        mode="subscription",
        price_id=settings.plan_monthly_price_id or None,
    ),
    "plano_vitalicio": Plan(
        key="plano_vitalicio",
        display_name="Plano Vitalício",
        emoji="🚀",
        mode="payment",
        price_id=settings.plan_lifetime_price_id or None,
    ),
}

# Callback keys used by the first version of the bot keyboard
LEGACY_KEYS: dict[str, str] = {
    "plano1": "plano_semanal",
    "plano2": "plano_mensal",
    "plano3": "plano_vitalicio",
}


def get_plan(key: str) -> Plan | None:
    """Get a plan by its keyboard key (legacy keys accepted)."""
    return PLANS.get(LEGACY_KEYS.get(key, key))


def get_plan_by_price_id(price_id: str | None) -> Plan | None:
    """Reverse lookup: Stripe price ID -> plan. Returns None if not found."""
    if not price_id:
        return None
    for plan in PLANS.values():
        if plan.price_id and plan.price_id == price_id:
            return plan
    return None


def available_plans() -> list[Plan]:
    """Plans that can actually be sold (price ID configured)."""
    return [plan for plan in PLANS.values() if plan.price_id]
