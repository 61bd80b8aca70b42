"""
Tests for handlers module.
"""

from datetime import timedelta

import pytest
from unittest.mock import AsyncMock, MagicMock
from telegram import ChatMember
from telegram.ext import ApplicationHandlerStop


@pytest.fixture
def admission():
    """Create a mock Admission that guards every chat."""
    from gatebot.services.admission import Admission

    issuer = MagicMock()
    issuer.should_challenge = AsyncMock(return_value=True)
    issuer.admit = AsyncMock()
    evaluator = MagicMock()
    evaluator.evaluate = AsyncMock()
    return Admission(
        issuer=issuer,
        evaluator=evaluator,
        executor=MagicMock(),
        sweep=MagicMock(),
        guarded_chats=set(),
        update_expiration_seconds=60,
    )


@pytest.fixture
def mock_context(admission):
    """Create a mock callback context carrying the admission components."""
    context = MagicMock()
    context.bot_data = {"admission": admission}
    return context


@pytest.fixture
def mock_update():
    """Create a mock Update for a private chat command."""
    update = MagicMock()
    update.message.reply_text = AsyncMock()
    return update


def _member_update(old_status=ChatMember.LEFT, new_status=ChatMember.MEMBER, chat_id=-100, via_join_request=False):
    user = MagicMock(id=7, username="newbie", first_name="New", is_bot=False)
    update = MagicMock()
    update.chat_member.chat.id = chat_id
    update.chat_member.via_join_request = via_join_request
    update.chat_member.old_chat_member = MagicMock(status=old_status, user=user)
    update.chat_member.new_chat_member = MagicMock(status=new_status, user=user)
    return update


def _message_update(text="дружба", chat_id=-100, age_seconds=0):
    from gatebot.models.pending import utcnow

    update = MagicMock()
    update.effective_chat.id = chat_id
    update.effective_user.id = 7
    message = update.effective_message
    message.message_id = 42
    message.text = text
    message.caption = None
    message.sticker = None
    message.date = utcnow() - timedelta(seconds=age_seconds)
    return update


class TestBaseHandlers:
    """Tests for base command handlers."""

    @pytest.mark.asyncio
    async def test_start_command(self, mock_update, mock_context):
        """Test /start explains what the bot does."""
        from gatebot.handlers.base import start

        await start(mock_update, mock_context)

        mock_update.message.reply_text.assert_called_once()
        call_args = mock_update.message.reply_text.call_args[0][0]
        assert "администратором" in call_args

    @pytest.mark.asyncio
    async def test_help_command(self, mock_update, mock_context):
        """Test /help lists the commands."""
        from gatebot.handlers.base import help_command

        await help_command(mock_update, mock_context)

        call_args = mock_update.message.reply_text.call_args[0][0]
        assert "/start" in call_args
        assert "/help" in call_args


class TestChatMemberHandler:
    """Tests for handle_chat_member."""

    @pytest.mark.asyncio
    async def test_join_issues_challenge(self, mock_context, admission):
        """Test a new member is challenged with their display name."""
        from gatebot.handlers.members import handle_chat_member

        await handle_chat_member(_member_update(), mock_context)

        admission.issuer.admit.assert_awaited_once()
        chat_id, user = admission.issuer.admit.call_args[0]
        assert chat_id == -100
        assert user.id == 7
        assert user.display_name == "@newbie"

    @pytest.mark.asyncio
    async def test_restricted_member_joining(self, mock_context, admission):
        """Test a restricted member who is in the chat counts as joined."""
        from gatebot.handlers.members import handle_chat_member

        update = _member_update(new_status=ChatMember.RESTRICTED)
        update.chat_member.new_chat_member.is_member = True

        await handle_chat_member(update, mock_context)

        admission.issuer.admit.assert_awaited_once()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("old_status,new_status", [
        (ChatMember.MEMBER, ChatMember.ADMINISTRATOR),
        (ChatMember.MEMBER, ChatMember.LEFT),
        (ChatMember.LEFT, ChatMember.BANNED),
    ])
    async def test_not_a_join(self, mock_context, admission, old_status, new_status):
        """Test promotions, leaves and bans are ignored."""
        from gatebot.handlers.members import handle_chat_member

        await handle_chat_member(_member_update(old_status, new_status), mock_context)

        admission.issuer.admit.assert_not_called()

    @pytest.mark.asyncio
    async def test_join_request_ignored(self, mock_context, admission):
        """Test members approved through a join request are not challenged."""
        from gatebot.handlers.members import handle_chat_member

        await handle_chat_member(_member_update(via_join_request=True), mock_context)

        admission.issuer.admit.assert_not_called()

    @pytest.mark.asyncio
    async def test_unguarded_chat_ignored(self, mock_context, admission):
        from gatebot.handlers.members import handle_chat_member

        admission.guarded_chats = {-200}

        await handle_chat_member(_member_update(chat_id=-100), mock_context)

        admission.issuer.admit.assert_not_called()

    @pytest.mark.asyncio
    async def test_exempt_member_not_challenged(self, mock_context, admission):
        from gatebot.handlers.members import handle_chat_member

        admission.issuer.should_challenge.return_value = False

        await handle_chat_member(_member_update(), mock_context)

        admission.issuer.admit.assert_not_called()

    @pytest.mark.asyncio
    async def test_admit_error_logged(self, mock_context, admission):
        """Test an AdmitError does not escape the handler."""
        from gatebot.core.exceptions import AdmitError
        from gatebot.handlers.members import handle_chat_member

        admission.issuer.admit.side_effect = AdmitError("already pending")

        await handle_chat_member(_member_update(), mock_context)


class TestChatMessageHandler:
    """Tests for handle_chat_message."""

    @pytest.mark.asyncio
    async def test_resolved_message_stops_other_handlers(self, mock_context, admission):
        """Test a message consumed by a challenge ends handler processing."""
        from gatebot.handlers.members import handle_chat_message
        from gatebot.models.admission import Outcome
        from gatebot.models.messages import TextMessage

        admission.evaluator.evaluate.return_value = Outcome.PASSED

        with pytest.raises(ApplicationHandlerStop):
            await handle_chat_message(_message_update(), mock_context)

        chat_id, user_id, message = admission.evaluator.evaluate.call_args[0]
        assert (chat_id, user_id) == (-100, 7)
        assert isinstance(message, TextMessage)
        assert message.text == "дружба"

    @pytest.mark.asyncio
    async def test_unrelated_message_passes_through(self, mock_context, admission):
        """Test messages from members without a challenge are left alone."""
        from gatebot.handlers.members import handle_chat_message
        from gatebot.models.admission import Outcome

        admission.evaluator.evaluate.return_value = Outcome.NOT_APPLICABLE

        await handle_chat_message(_message_update(), mock_context)

    @pytest.mark.asyncio
    async def test_stale_message_skipped(self, mock_context, admission):
        """Test messages older than the expiration window are not evaluated."""
        from gatebot.handlers.members import handle_chat_message

        await handle_chat_message(_message_update(age_seconds=120), mock_context)

        admission.evaluator.evaluate.assert_not_called()

    @pytest.mark.asyncio
    async def test_unguarded_chat_skipped(self, mock_context, admission):
        from gatebot.handlers.members import handle_chat_message

        admission.guarded_chats = {-200}

        await handle_chat_message(_message_update(chat_id=-100), mock_context)

        admission.evaluator.evaluate.assert_not_called()


class TestRegisterHandlers:
    """Tests for handler registration."""

    def test_captcha_handler_runs_first(self):
        """Test the answer handler sits in a group before the default one."""
        from telegram.ext import ChatMemberHandler, MessageHandler
        from gatebot.handlers import CAPTCHA_HANDLER_GROUP, register_handlers

        app = MagicMock()

        register_handlers(app)

        registered = [(call.args[0], call.kwargs.get("group", 0)) for call in app.add_handler.call_args_list]
        assert any(isinstance(h, ChatMemberHandler) for h, _ in registered)
        assert [group for h, group in registered if isinstance(h, MessageHandler)] == [CAPTCHA_HANDLER_GROUP]
        assert CAPTCHA_HANDLER_GROUP < 0

    def test_edited_messages_not_evaluated(self):
        """Test an edit by a pending member is not taken as a new answer."""
        from datetime import datetime, timezone
        from telegram import Chat, Message, Update, User
        from telegram.ext import MessageHandler
        from gatebot.handlers import register_handlers

        app = MagicMock()
        register_handlers(app)
        handler = next(
            call.args[0] for call in app.add_handler.call_args_list
            if isinstance(call.args[0], MessageHandler)
        )
        message = Message(
            message_id=42,
            date=datetime.now(timezone.utc),
            chat=Chat(id=-100, type=Chat.SUPERGROUP),
            from_user=User(id=7, first_name="New", is_bot=False),
            text="нет",
        )

        assert handler.check_update(Update(update_id=1, message=message))
        assert not handler.check_update(Update(update_id=2, edited_message=message))
