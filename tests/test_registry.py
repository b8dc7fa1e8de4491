"""Tests for ailink/coordination/registry.py"""

import pytest

from ailink.errors import NotFoundError, ValidationError


class TestRegister:
    """Test AgentRegistry.register()."""

    def test_register_returns_record(self, registry, clock):
        """Should return the stored record with capabilities and timestamp."""
        record = registry.register("oracle-1", "Price Oracle", ["price"], {"region": "eu"})

        assert record.id == "oracle-1"
        assert record.display_name == "Price Oracle"
        assert record.capabilities.to_list() == ["price"]
        assert record.metadata == {"region": "eu"}
        assert record.registered_at == clock.now

    def test_reregister_overwrites(self, registry):
        """Should replace name and capabilities on re-registration."""
        registry.register("a1", "Old", ["x"])
        registry.register("a1", "New", ["y", "z"])

        agent = registry.get("a1")
        assert agent.display_name == "New"
        assert agent.capabilities.to_list() == ["y", "z"]
        assert len(registry.list()) == 1

    def test_reregister_keeps_listing_order(self, registry):
        """Should keep an agent's first-registration position."""
        registry.register("a1", "A")
        registry.register("a2", "B")
        registry.register("a1", "A again")

        assert [a.id for a in registry.list()] == ["a1", "a2"]

    def test_empty_id_rejected(self, registry):
        """Should reject an empty agent id."""
        with pytest.raises(ValidationError):
            registry.register("", "Nameless")

    def test_empty_name_rejected(self, registry):
        """Should reject an empty display name."""
        with pytest.raises(ValidationError):
            registry.register("a1", "")

    def test_non_dict_metadata_rejected(self, registry):
        """Should reject metadata that is not an object."""
        with pytest.raises(ValidationError):
            registry.register("a1", "A", metadata=["not", "a", "dict"])


class TestLookup:
    """Test get/list/capable_of."""

    def test_get_unknown_raises_not_found(self, registry):
        """Should raise NotFoundError for an unknown agent."""
        with pytest.raises(NotFoundError) as exc:
            registry.get("ghost")
        assert exc.value.kind == "NotFound"

    def test_exists(self, registry):
        """Should report registration state."""
        registry.register("a1", "A")
        assert registry.exists("a1")
        assert not registry.exists("a2")

    def test_filter_by_capability(self, registry):
        """Should list only agents holding the capability."""
        registry.register("a1", "A", ["price"])
        registry.register("a2", "B", ["trade"])
        registry.register("a3", "C", ["price", "trade"])

        assert [a.id for a in registry.list("price")] == ["a1", "a3"]

    def test_capable_of_requires_all(self, registry):
        """Should return agents covering every required capability."""
        registry.register("a1", "A", ["price"])
        registry.register("a2", "B", ["price", "trade"])

        assert [a.id for a in registry.capable_of(["price", "trade"])] == ["a2"]

    def test_wire_form(self, registry):
        """Should serialise to the camelCase wire form."""
        registry.register("a1", "A", ["b", "a"])
        wire = registry.get("a1").to_dict()

        assert wire["id"] == "a1"
        assert wire["name"] == "A"
        assert wire["capabilities"] == ["a", "b"]
        assert "registeredAt" in wire
