"""
Telegram bot that guards group chats with a new-member captcha.
"""
