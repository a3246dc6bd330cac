"""HTTP server exposing the checkout, portal and Stripe webhook handlers."""

import asyncio
import logging
import signal
from typing import Optional

from aiohttp import web

from fintrack.config import get_config
from fintrack.db.pool import close_pool
from fintrack.payments.checkout import cors_headers, handle_checkout, handle_portal
from fintrack.payments.webhooks import handle_webhook

logger = logging.getLogger(__name__)

CHECKOUT_PATH = "/create-checkout-session"
PORTAL_PATH = "/create-portal-session"
WEBHOOK_PATH = "/stripe-webhook"


async def checkout_endpoint(request: web.Request) -> web.Response:
    """Handle POST /create-checkout-session."""
    payload = await request.read()
    return await handle_checkout(
        payload,
        request.headers.get("Authorization"),
        request.headers.get("Origin"),
    )


async def portal_endpoint(request: web.Request) -> web.Response:
    """Handle POST /create-portal-session."""
    return await handle_portal(
        request.headers.get("Authorization"),
        request.headers.get("Origin"),
    )


async def preflight_endpoint(request: web.Request) -> web.Response:
    """Answer CORS preflight requests."""
    return web.Response(status=200, headers=cors_headers())


async def webhook_endpoint(request: web.Request) -> web.Response:
    """Handle POST /stripe-webhook."""
    sig_header = request.headers.get("Stripe-Signature")
    if not sig_header:
        logger.error("Missing Stripe-Signature header")
        return web.Response(status=400, text="Missing signature")

    # Signature is computed over the raw bytes
    payload = await request.read()

    return await handle_webhook(payload, sig_header)


async def _on_cleanup(app: web.Application) -> None:
    await close_pool()


def create_app() -> web.Application:
    """Create the aiohttp application with all routes."""
    app = web.Application()
    app.router.add_post(CHECKOUT_PATH, checkout_endpoint)
    app.router.add_route("OPTIONS", CHECKOUT_PATH, preflight_endpoint)
    app.router.add_post(PORTAL_PATH, portal_endpoint)
    app.router.add_route("OPTIONS", PORTAL_PATH, preflight_endpoint)
    app.router.add_post(WEBHOOK_PATH, webhook_endpoint)
    app.on_cleanup.append(_on_cleanup)
    return app


async def run_server(shutdown_event: Optional[asyncio.Event] = None) -> None:
    """Serve until the shutdown event is set (or forever without one)."""
    config = get_config()

    runner = web.AppRunner(create_app())
    await runner.setup()

    site = web.TCPSite(runner, config.server_host, config.server_port)
    await site.start()

    logger.info(f"Server listening on {config.server_host}:{config.server_port}")

    try:
        await (shutdown_event or asyncio.Event()).wait()
    finally:
        logger.info("Shutting down server...")
        await runner.cleanup()


def main() -> None:
    """Run the server as a standalone process until SIGTERM/SIGINT."""
    config = get_config()
    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    shutdown_event = asyncio.Event()

    def signal_handler(sig, frame):
        logger.info(f"Received signal {sig}")
        loop.call_soon_threadsafe(shutdown_event.set)

    signal.signal(signal.SIGTERM, signal_handler)
    signal.signal(signal.SIGINT, signal_handler)

    try:
        loop.run_until_complete(run_server(shutdown_event=shutdown_event))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    finally:
        loop.close()
        logger.info("Server stopped")


if __name__ == "__main__":
    main()
