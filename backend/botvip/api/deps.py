"""Shared API dependencies — single import point for all routers.

Services are built once in the application lifespan and stored on
``app.state.services``; routers reach them through these dependencies::

    from botvip.api.deps import get_reconciler
"""

from fastapi import Request

from botvip.billing.webhooks import WebhookReconciler
from botvip.runtime import Services
from botvip.telegram.handlers import BotHandlers


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_reconciler(request: Request) -> WebhookReconciler:
    return get_services(request).reconciler


def get_bot_handlers(request: Request) -> BotHandlers:
    return get_services(request).handlers


def get_telegram_webhook_secret(request: Request) -> str:
    return get_services(request).settings.telegram_webhook_secret


__all__ = [
    "get_services",
    "get_reconciler",
    "get_bot_handlers",
    "get_telegram_webhook_secret",
]
