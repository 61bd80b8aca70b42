"""
Custom application exceptions.
"""


class BotError(Exception):
    """Base exception for bot errors."""
    pass


class AdmitError(BotError):
    """Failed to issue an admission challenge to a new member."""
    pass


class StoreError(BotError):
    """Record store backend failed."""
    pass


class APIError(BotError):
    """External API call failed."""
    pass


class GatewayError(APIError):
    """Telegram Bot API call failed."""
    pass
