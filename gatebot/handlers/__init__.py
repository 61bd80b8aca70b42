"""
Telegram handlers registration.
"""

from telegram.ext import Application, ChatMemberHandler, CommandHandler, MessageHandler, filters

# Runs before every other handler group so challenge answers are consumed first
CAPTCHA_HANDLER_GROUP = -1


def register_handlers(app: Application) -> None:
    """Register all Telegram handlers with the application."""
    from gatebot.handlers.base import start, help_command
    from gatebot.handlers.members import handle_chat_member, handle_chat_message

    app.add_handler(CommandHandler("start", start, filters=filters.ChatType.PRIVATE))
    app.add_handler(CommandHandler("help", help_command, filters=filters.ChatType.PRIVATE))
    app.add_handler(ChatMemberHandler(handle_chat_member, ChatMemberHandler.CHAT_MEMBER))
    app.add_handler(
        MessageHandler(
            filters.UpdateType.MESSAGE & filters.ChatType.GROUPS & ~filters.StatusUpdate.ALL,
            handle_chat_message,
        ),
        group=CAPTCHA_HANDLER_GROUP,
    )
