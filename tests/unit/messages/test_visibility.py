"""Tests for the per-viewer visibility resolver."""

from huddle.models.context import ConnectionContext, Role
from huddle.models.entities import Message
from huddle.services.messages import render_message, resolve_display_text


def make_message(original="you idiot, where is it", sanitized="I have some concerns about this."):
    return Message(
        conversation_id="general",
        sender_id="alice",
        original_content=original,
        sanitized_content=sanitized,
    )


class TestResolveDisplayText:
    def test_sender_sees_original(self):
        message = make_message()
        assert resolve_display_text(message, "alice", Role.MEMBER) == message.original_content

    def test_admin_sees_original(self):
        message = make_message()
        assert resolve_display_text(message, "root", Role.ADMIN) == message.original_content

    def test_role_given_as_string(self):
        """Roles coming straight from claims compare equal to the enum."""
        message = make_message()
        assert resolve_display_text(message, "root", "admin") == message.original_content

    def test_member_sees_sanitized(self):
        message = make_message()
        assert resolve_display_text(message, "bob", Role.MEMBER) == message.sanitized_content

    def test_anonymous_sees_sanitized(self):
        message = make_message()
        assert resolve_display_text(message, None, None) == message.sanitized_content

    def test_empty_sanitized_falls_back_to_original(self):
        """Without a sanitized variant everyone sees the original."""
        message = make_message(sanitized="")
        for viewer_id, role in [("alice", Role.MEMBER), ("bob", Role.MEMBER), ("root", Role.ADMIN)]:
            assert resolve_display_text(message, viewer_id, role) == message.original_content

    def test_stored_row_untouched(self):
        """Resolution never rewrites the message."""
        message = make_message()
        before = message.model_dump()
        resolve_display_text(message, "bob", Role.MEMBER)
        resolve_display_text(message, "alice", Role.MEMBER)
        assert message.model_dump() == before


class TestRenderMessage:
    def test_render_for_sender(self):
        message = make_message()
        view = render_message(message, ConnectionContext(user_id="alice"))
        assert view.content == message.original_content
        assert view.is_own

    def test_render_for_member(self):
        message = make_message()
        view = render_message(message, ConnectionContext(user_id="bob"))
        assert view.content == message.sanitized_content
        assert not view.is_own
        assert view.id == message.id

    def test_render_for_admin(self):
        message = make_message()
        view = render_message(message, ConnectionContext(user_id="root", role=Role.ADMIN))
        assert view.content == message.original_content
        assert not view.is_own

    def test_render_without_viewer(self):
        message = make_message()
        assert render_message(message, None).content == message.sanitized_content
