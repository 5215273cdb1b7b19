"""
HTTP endpoint receiving payment provider status updates.
"""

import logging
from json import JSONDecodeError

from aiohttp import web

from marketbot.bot.delivery import MessageSender
from marketbot.core.errors import MarketbotError
from marketbot.core.payments import PaymentWebhookHandler

logger = logging.getLogger(__name__)

HANDLER_KEY = web.AppKey("payment_handler", PaymentWebhookHandler)
SENDER_KEY = web.AppKey("sender", MessageSender)


async def handle_payment_webhook(request: web.Request) -> web.Response:
    try:
        payload = await request.json()
    except (JSONDecodeError, UnicodeDecodeError):
        return web.json_response({"error": "invalid JSON"}, status=400)
    if not isinstance(payload, dict):
        return web.json_response({"error": "expected an object"}, status=400)

    try:
        notification = await request.app[HANDLER_KEY].handle(payload)
    except MarketbotError as e:
        logger.error(f"Payment webhook failed for {payload.get('externalId')!r}: {e}", exc_info=True)
        # Non-2xx makes the provider retry
        return web.json_response({"error": "temporarily unavailable"}, status=503)

    if notification is not None:
        await request.app[SENDER_KEY].send(notification.user_id, notification.response)
    return web.json_response({"ok": True})


def create_webhook_app(handler: PaymentWebhookHandler, sender: MessageSender, path: str) -> web.Application:
    app = web.Application()
    app[HANDLER_KEY] = handler
    app[SENDER_KEY] = sender
    app.router.add_post(path, handle_payment_webhook)
    return app
