"""Tests for session title derivation."""

from gemchat.core.titles import derive_title, needs_derived_title
from gemchat.models.messages import Message
from gemchat.models.sessions import DEFAULT_TITLE, ChatSession


def test_short_first_user_message_is_used_verbatim():
    messages = [Message.from_bot("Welcome"), Message.from_user("Hello")]
    assert derive_title(messages) == "Hello"


def test_long_message_is_truncated_with_ellipsis():
    text = "Explain the difference between TCP and UDP please"
    title = derive_title([Message.from_user(text)])
    assert title == text[:30] + "..."
    assert len(title) == 33


def test_exactly_thirty_characters_is_not_truncated():
    text = "x" * 30
    assert derive_title([Message.from_user(text)]) == text


def test_first_user_message_wins():
    messages = [Message.from_user("first"), Message.from_user("second")]
    assert derive_title(messages) == "first"


def test_no_user_message_falls_back_to_default():
    assert derive_title([Message.from_bot("Welcome")]) == DEFAULT_TITLE
    assert derive_title([]) == DEFAULT_TITLE


class TestNeedsDerivedTitle:
    def _session(self, **overrides) -> ChatSession:
        values = {
            "messages": [Message.from_bot("Welcome"), Message.from_user("Hi")],
        }
        values.update(overrides)
        return ChatSession(**values)

    def test_placeholder_title_after_first_exchange(self):
        assert needs_derived_title(self._session())

    def test_custom_title_is_kept(self):
        assert not needs_derived_title(self._session(title="Trip planning"))

    def test_custom_instruction_blocks_derivation(self):
        assert not needs_derived_title(self._session(system_instruction="Be terse"))

    def test_blank_instruction_does_not_block(self):
        assert needs_derived_title(self._session(system_instruction="   "))

    def test_single_message_is_not_enough(self):
        assert not needs_derived_title(
            self._session(messages=[Message.from_bot("Welcome")])
        )
