"""
Pytest configuration and shared fixtures.
"""

import os
import sys
from datetime import datetime, timedelta, timezone

import pytest
from unittest.mock import AsyncMock, MagicMock

# Add project root to path so gatebot imports without installing
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


# ============================================================================
# Environment Fixtures
# ============================================================================

@pytest.fixture(autouse=True)
def mock_env(monkeypatch):
    """Set up test environment variables."""
    monkeypatch.setenv("TG_TOKEN", "test_token_123")
    monkeypatch.setenv("CAPTCHA_ANSWER", "дружба")
    monkeypatch.setenv("CAPTCHA_TIMEOUT_SECONDS", "60")
    monkeypatch.setenv("CAPTCHA_MAX_RETRIES", "3")
    monkeypatch.setenv("SWEEP_INTERVAL_SECONDS", "5")
    monkeypatch.setenv("WHITELIST_IDS", "111, 222")


# ============================================================================
# Time
# ============================================================================

class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now += timedelta(seconds=seconds)
        return self.now


@pytest.fixture
def clock():
    """Clock frozen at 2024-01-01 12:00 UTC (T)."""
    return FakeClock(datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc))


# ============================================================================
# Mock Fixtures
# ============================================================================

@pytest.fixture
def mock_bot():
    """Create a mock Telegram Bot."""
    bot = MagicMock()
    bot.send_message = AsyncMock(return_value=MagicMock(message_id=500))
    bot.edit_message_text = AsyncMock()
    bot.delete_message = AsyncMock(return_value=True)
    bot.ban_chat_member = AsyncMock(return_value=True)
    bot.unban_chat_member = AsyncMock(return_value=True)
    return bot


@pytest.fixture
def gateway():
    """Create a mock TelegramGateway; the prompt gets message id 1000."""
    gw = MagicMock()
    gw.send_message = AsyncMock(return_value=1000)
    gw.edit_message = AsyncMock()
    gw.delete_messages = AsyncMock()
    gw.ban_member = AsyncMock()
    gw.unban_member = AsyncMock()
    return gw


# ============================================================================
# Storage Fixtures
# ============================================================================

@pytest.fixture
def member_store():
    """Create an empty in-memory member store."""
    from gatebot.state.members import InMemoryMemberStore
    return InMemoryMemberStore()


@pytest.fixture
def whitelist():
    """Create an empty in-memory whitelist."""
    from gatebot.state.whitelist import InMemoryWhitelist
    return InMemoryWhitelist()


@pytest.fixture
def make_member(clock):
    """Factory for pending members; user 7 in chat 100 joined at T by default."""
    from gatebot.models.pending import PendingMember

    def _make(user_id=7, chat_id=100, retry_count=0, deadline_in=60, prompt_message_id=1000):
        return PendingMember(
            user_id=user_id,
            chat_id=chat_id,
            display_name=f"@user{user_id}",
            prompt_message_id=prompt_message_id,
            joined_at=clock.now,
            deadline=clock.now + timedelta(seconds=deadline_in),
            retry_count=retry_count,
        )

    return _make


# ============================================================================
# Admission Fixtures
# ============================================================================

@pytest.fixture
def texts():
    """Create short admission texts."""
    from gatebot.services.admission.texts import AdmissionTexts
    return AdmissionTexts(
        answer="дружба",
        welcome_template="{name}, напиши «{answer}» за {minutes} мин., попыток: {attempts}",
        retry_template="{name}, неверно. Осталось попыток: {remaining}",
        join_template="Добро пожаловать, {name}!",
    )


@pytest.fixture
def executor(member_store, gateway, texts, whitelist, clock):
    """Create an AdmissionOutcomeExecutor over the in-memory store."""
    from gatebot.services.admission.executor import AdmissionOutcomeExecutor
    return AdmissionOutcomeExecutor(
        member_store, gateway, texts, whitelist=whitelist, grace_seconds=1.0, clock=clock,
    )


@pytest.fixture
def issuer(member_store, gateway, texts, whitelist, clock):
    """Create a ChallengeIssuer with a 60s timeout and 3 attempts."""
    from gatebot.services.admission.issuer import ChallengeIssuer
    return ChallengeIssuer(
        member_store,
        gateway,
        texts,
        timeout=timedelta(seconds=60),
        max_retries=3,
        whitelist=whitelist,
        whitelist_ids=[111],
        clock=clock,
    )


@pytest.fixture
def evaluator(member_store, gateway, executor, texts, clock):
    """Create an AnswerEvaluator expecting «дружба», 3 attempts, 60s timeout."""
    from gatebot.services.admission.evaluator import AnswerEvaluator
    return AnswerEvaluator(
        member_store,
        gateway,
        executor,
        texts,
        expected_answer="дружба",
        max_retries=3,
        timeout=timedelta(seconds=60),
        clock=clock,
    )


@pytest.fixture
def sweep(member_store, executor, clock):
    """Create a SweepScheduler with a 5s interval."""
    from gatebot.services.admission.sweep import SweepScheduler
    return SweepScheduler(member_store, executor, 5.0, clock=clock)
