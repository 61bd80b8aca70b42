# Services module - Telegram gateway and admission flow
from .gateway import TelegramGateway

__all__ = ["TelegramGateway"]
