"""
Base Telegram command handlers.
"""

from telegram import Update
from telegram.ext import ContextTypes


async def start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /start command."""
    await update.message.reply_text(
        "Привет! Я охраняю групповые чаты от ботов: каждый новый участник "
        "должен ответить на контрольный вопрос.\n"
        "Добавь меня в группу администратором с правом блокировать участников "
        "и удалять сообщения."
    )


async def help_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /help command."""
    await update.message.reply_text(
        "Команды:\n"
        "/start - Начать работу\n"
        "/help - Эта справка\n"
        "Новый участник группы получает вопрос и должен ответить на него сообщением. "
        "Неверные ответы и молчание до истечения времени приводят к бану."
    )
