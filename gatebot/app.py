"""
Application factory and main entry point.
"""

import asyncio
from telegram import Update
from telegram.ext import Application

from gatebot.core.config import settings
from gatebot.core.logging import setup_logging, get_logger
from gatebot.handlers import register_handlers
from gatebot.handlers.members import ADMISSION_KEY
from gatebot.services.admission import Admission, build_admission
from gatebot.web.server import HealthState, start_health_server

# Initialize logging
setup_logging(settings.log_level)
logger = get_logger(__name__)


async def create_app() -> Application:
    """Create and configure the Telegram Application."""
    application = (
        Application.builder()
        .token(settings.tg_token)
        .concurrent_updates(True)
        .build()
    )
    application.bot_data[ADMISSION_KEY] = build_admission(application.bot, settings)
    register_handlers(application)

    return application


async def main() -> None:
    """Main application entry point."""
    logger.info("Starting bot...")

    application = await create_app()
    admission: Admission = application.bot_data[ADMISSION_KEY]

    health = HealthState()
    health_runner = await start_health_server(health, settings.health_host, settings.health_port)

    # Initialize and start bot; chat_member updates are only sent when requested
    await application.initialize()
    await application.start()
    await application.updater.start_polling(allowed_updates=Update.ALL_TYPES)

    admission.sweep.start()
    health.ready = True
    logger.info("Bot and captcha sweep are running.")

    # Keep running until cancelled
    stop_signal = asyncio.Event()
    try:
        await stop_signal.wait()
    except asyncio.CancelledError:
        pass
    finally:
        # Graceful shutdown
        health.ready = False
        await admission.sweep.stop()
        await application.updater.stop()
        await application.stop()
        await application.shutdown()
        await health_runner.cleanup()
