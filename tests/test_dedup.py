"""Tests for hash-based dedup and insert."""

from unittest.mock import Mock

import pytest

from database import StorageError
from dedup import upsert_items
from models import RawFeedItem, hash_guid


def _raw(guid: str, title: str = "Title") -> RawFeedItem:
    return RawFeedItem(title=title, link=f"https://example.com/{guid}", guid=guid)


class TestUpsertItems:
    """Tests for upsert_items()."""

    def test_empty_input_touches_nothing(self):
        db = Mock()

        assert upsert_items(db, "src", []) == 0
        db.existing_hashes.assert_not_called()
        db.insert_items.assert_not_called()

    def test_inserts_only_unseen_items(self):
        db = Mock()
        db.existing_hashes.return_value = {hash_guid("a")}
        db.insert_items.side_effect = lambda items: len(items)

        count = upsert_items(db, "src", [_raw("a"), _raw("b"), _raw("c")])

        assert count == 2
        db.existing_hashes.assert_called_once_with({hash_guid("a"), hash_guid("b"), hash_guid("c")})
        inserted = db.insert_items.call_args[0][0]
        assert [item.guid_hash for item in inserted] == [hash_guid("b"), hash_guid("c")]
        assert all(item.source_id == "src" for item in inserted)

    def test_all_seen_skips_insert(self):
        db = Mock()
        db.existing_hashes.return_value = {hash_guid("a")}

        assert upsert_items(db, "src", [_raw("a")]) == 0
        db.insert_items.assert_not_called()

    def test_duplicate_guid_in_batch_keeps_first(self):
        db = Mock()
        db.existing_hashes.return_value = set()
        db.insert_items.side_effect = lambda items: len(items)

        count = upsert_items(db, "src", [_raw("a", "First"), _raw("a", "Second")])

        assert count == 1
        assert db.insert_items.call_args[0][0][0].title == "First"

    def test_storage_error_propagates(self):
        db = Mock()
        db.existing_hashes.return_value = set()
        db.insert_items.side_effect = StorageError("Failed to insert items: disk full")

        with pytest.raises(StorageError, match="disk full"):
            upsert_items(db, "src", [_raw("a")])


class TestUpsertItemsWithStore:
    """Tests against a real in-memory store."""

    def test_idempotent(self, db):
        source = db.add_source("https://a.example/rss", "A")
        items = [_raw("a"), _raw("b")]

        assert upsert_items(db, source.id, items) == 2
        assert upsert_items(db, source.id, items) == 0
        assert db.count_items(source.id) == 2

    def test_same_guid_from_other_source_is_not_new(self, db):
        a = db.add_source("https://a.example/rss", "A")
        b = db.add_source("https://b.example/rss", "B")

        upsert_items(db, a.id, [_raw("shared")])

        assert upsert_items(db, b.id, [_raw("shared")]) == 0
        assert db.count_items(b.id) == 0
