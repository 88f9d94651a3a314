"""Tests for the discover-or-create protocol."""

from __future__ import annotations

from unittest.mock import MagicMock

from vpce_operator.reconcilers.discovery import (
    CREATED,
    FOUND_BY_ID,
    FOUND_BY_TAGS,
    discover_or_create,
    repair_tags,
)


class FakeProvider:
    """Tiny in-memory provider keyed by id."""

    def __init__(self):
        self.resources = {}
        self.create_calls = 0

    def describe(self, resource_id):
        return self.resources.get(resource_id)

    def find(self):
        return list(self.resources.values())

    def create(self):
        self.create_calls += 1
        resource = {"Id": f"res-{self.create_calls}"}
        self.resources[resource["Id"]] = resource
        return resource


class TestDiscoverOrCreate:
    """Test cases for discover_or_create."""

    def test_found_by_recorded_id(self):
        """Test that a recorded id short-circuits the search."""
        find = MagicMock()
        create = MagicMock()

        found = discover_or_create("sg-1", lambda _id: {"GroupId": _id}, find, create)

        assert found.via == FOUND_BY_ID
        assert found.resource == {"GroupId": "sg-1"}
        find.assert_not_called()
        create.assert_not_called()

    def test_missing_recorded_id_falls_back_to_tags(self):
        """Test that a vanished id falls back to the tag search."""
        create = MagicMock()

        found = discover_or_create("sg-gone", lambda _id: None, lambda: [{"GroupId": "sg-2"}], create)

        assert found.via == FOUND_BY_TAGS
        assert found.resource["GroupId"] == "sg-2"
        create.assert_not_called()

    def test_multiple_matches_take_first(self):
        """Test that several tag matches resolve to the first one."""
        found = discover_or_create(None, MagicMock(), lambda: [{"Id": "a"}, {"Id": "b"}], MagicMock())

        assert found.resource == {"Id": "a"}

    def test_creates_when_nothing_matches(self):
        """Test that create runs only when nothing is found."""
        describe = MagicMock()

        found = discover_or_create(None, describe, lambda: [], lambda: {"Id": "new"})

        assert found.via == CREATED
        assert found.created
        describe.assert_not_called()

    def test_second_run_creates_nothing(self):
        """Test that running twice without state changes issues one create."""
        provider = FakeProvider()

        first = discover_or_create(None, provider.describe, provider.find, provider.create)
        second = discover_or_create(first.resource["Id"], provider.describe, provider.find, provider.create)

        assert first.created
        assert not second.created
        assert second.resource == first.resource
        assert provider.create_calls == 1


class TestRepairTags:
    """Test cases for repair_tags."""

    def test_writes_only_missing_tags(self):
        """Test that only absent or wrong tags are written."""
        tagger = MagicMock()
        current = [{"Key": "Name", "Value": "n"}, {"Key": "cluster", "Value": "shared"}, {"Key": "extra", "Value": "x"}]

        written = repair_tags(tagger, "sg-1", current, {"Name": "n", "cluster": "owned", "operator": "managed"})

        assert written == {"cluster": "owned", "operator": "managed"}
        tagger.create_tags.assert_called_once_with(["sg-1"], {"cluster": "owned", "operator": "managed"})

    def test_noop_when_tags_present(self):
        """Test that a correctly tagged resource is left alone."""
        tagger = MagicMock()

        written = repair_tags(tagger, "sg-1", [{"Key": "a", "Value": "1"}], {"a": "1"})

        assert written == {}
        tagger.create_tags.assert_not_called()
