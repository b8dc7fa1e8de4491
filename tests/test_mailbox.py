"""Tests for ailink/coordination/mailbox.py"""

import pytest

from ailink.coordination.models import MessageKind
from ailink.errors import NotFoundError, ValidationError


@pytest.fixture
def agents(registry):
    registry.register("alice", "Alice")
    registry.register("bob", "Bob")


class TestSend:
    """Test Mailbox.send()."""

    def test_send_to_registered_agent(self, mailbox, agents):
        """Should store the message unread with a sequence id."""
        message = mailbox.send("alice", "bob", "hello")

        assert message.sequence_id > 0
        assert message.kind is MessageKind.REQUEST
        assert not message.read

    def test_send_to_unknown_agent_stores_nothing(self, mailbox, agents, store):
        """Should raise NotFoundError and leave the log untouched."""
        with pytest.raises(NotFoundError) as exc:
            mailbox.send("alice", "ghost", "hello")

        assert exc.value.entity_id == "ghost"
        assert store.stats()["messages"] == 0

    def test_sender_need_not_be_registered(self, mailbox, agents):
        """Should accept system senders that are not registered agents."""
        message = mailbox.send("system-scheduler", "bob", "wake up", kind="notification")
        assert message.from_id == "system-scheduler"

    def test_sequence_ids_increase(self, mailbox, agents):
        """Should assign strictly increasing sequence ids."""
        first = mailbox.send("alice", "bob", "1")
        second = mailbox.send("bob", "alice", "2")
        third = mailbox.send("alice", "bob", "3")

        assert first.sequence_id < second.sequence_id < third.sequence_id

    def test_invalid_kind_rejected(self, mailbox, agents):
        """Should reject unknown message kinds."""
        with pytest.raises(ValidationError):
            mailbox.send("alice", "bob", "hi", kind="yell")

    def test_non_string_body_rejected(self, mailbox, agents):
        """Should reject a body that is not a string."""
        with pytest.raises(ValidationError):
            mailbox.send("alice", "bob", {"not": "text"})


class TestRead:
    """Test Mailbox.read()."""

    def test_read_in_send_order(self, mailbox, agents):
        """Should return only the recipient's messages, oldest first."""
        mailbox.send("alice", "bob", "1")
        mailbox.send("bob", "alice", "not for bob")
        mailbox.send("alice", "bob", "2")

        assert [m.body for m in mailbox.read("bob")] == ["1", "2"]

    def test_mark_as_read_returns_pre_flip_snapshot(self, mailbox, agents):
        """Should return messages as unread and flip them afterwards."""
        mailbox.send("alice", "bob", "1")

        first = mailbox.read("bob", unread_only=True, mark_as_read=True)
        assert [m.read for m in first] == [False]
        assert mailbox.read("bob", unread_only=True) == []
        assert [m.read for m in mailbox.read("bob")] == [True]

    def test_read_without_mark_leaves_unread(self, mailbox, agents):
        """Should not change read flags unless asked."""
        mailbox.send("alice", "bob", "1")
        mailbox.read("bob", unread_only=True)

        assert mailbox.unread_count("bob") == 1

    def test_mark_only_affects_returned_messages(self, mailbox, agents):
        """Should leave messages sent after the read unread."""
        mailbox.send("alice", "bob", "1")
        mailbox.read("bob", unread_only=True, mark_as_read=True)
        mailbox.send("alice", "bob", "2")

        assert [m.body for m in mailbox.read("bob", unread_only=True)] == ["2"]

    def test_metadata_round_trips(self, mailbox, agents):
        """Should keep message metadata."""
        mailbox.send("alice", "bob", "1", metadata={"priority": "high"})
        assert mailbox.read("bob")[0].metadata == {"priority": "high"}

    def test_wire_form(self, mailbox, agents):
        """Should serialise to the camelCase wire form."""
        mailbox.send("alice", "bob", "hello", kind="data")
        wire = mailbox.read("bob")[0].to_dict()

        assert wire["from"] == "alice"
        assert wire["to"] == "bob"
        assert wire["kind"] == "data"
        assert wire["read"] is False
        assert "sequenceId" in wire and "sentAt" in wire
