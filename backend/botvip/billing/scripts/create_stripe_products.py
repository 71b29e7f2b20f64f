"""Create the BOTVIP products and prices in Stripe test mode.

Run once:
    python -m botvip.billing.scripts.create_stripe_products

Outputs price IDs to set in .env:
    PLANO_1=price_xxx  (weekly)
    PLANO_2=price_xxx  (monthly)
    PLANO_3=price_xxx  (lifetime, one-time)
"""

import asyncio

from botvip.billing.stripe_client import get_stripe_client
from botvip.config import settings

# (env var, product name, amount in centavos, recurring interval or None for one-time)
PRODUCTS = [
    ("PLANO_1", "BOTVIP Plano Semanal", 1990, "week"),
    ("PLANO_2", "BOTVIP Plano Mensal", 4990, "month"),
    ("PLANO_3", "BOTVIP Plano Vitalício", 19990, None),
]


async def main() -> None:
    if not settings.stripe_secret_key:
        print("ERROR: STRIPE_SECRET_KEY is not set in .env")
        return

    client = get_stripe_client(settings.stripe_secret_key)

    env_lines = []
    for env_name, name, amount, interval in PRODUCTS:
        product = await client.v1.products.create_async(params={"name": name})
        price_params = {
            "product": product.id,
            "unit_amount": amount,
            "currency": "brl",
        }
        if interval:
            price_params["recurring"] = {"interval": interval}
        price = await client.v1.prices.create_async(params=price_params)

        cadence = f"/{interval}" if interval else " (one-time)"
        print(f"Created product: {product.name} ({product.id})")
        print(f"  Price: R${amount / 100:.2f}{cadence} ({price.id})")
        env_lines.append(f"{env_name}={price.id}")

    print("\n--- Add these to your .env ---")
    for line in env_lines:
        print(line)


if __name__ == "__main__":
    asyncio.run(main())
