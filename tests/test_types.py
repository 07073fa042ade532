"""Tests for the content data model and its helpers."""

import pytest

from classify.errors import StoreCorruptError
from classify.types import (
    MAX_TAGS,
    ContentRecord,
    DeleteResult,
    content_hash,
    is_link,
    normalize_tags,
    truncate_for_prompt,
    validate_id,
)


class TestTruncation:
    """Hard character cutoff before the classifier call."""

    def test_one_over_limit_is_cut_to_limit(self):
        """A body of max_len + 1 characters becomes exactly max_len."""
        text = "x" * 101
        assert truncate_for_prompt(text, 100) == "x" * 100

    def test_at_limit_is_untouched(self):
        """A body of exactly max_len characters is returned unchanged."""
        text = "y" * 100
        assert truncate_for_prompt(text, 100) is text

    def test_cut_ignores_word_boundaries(self):
        assert truncate_for_prompt("hello world", 7) == "hello w"

    def test_zero_limit(self):
        assert truncate_for_prompt("abc", 0) == ""

    def test_negative_limit_rejected(self):
        with pytest.raises(ValueError):
            truncate_for_prompt("abc", -1)


class TestIsLink:

    @pytest.mark.parametrize("text", [
        "http://example.com",
        "https://example.com/a?b=c",
        "  https://example.com  ",
    ])
    def test_http_urls_are_links(self, text):
        assert is_link(text)

    @pytest.mark.parametrize("text", [
        "example.com",
        "ftp://example.com/file",
        "see https://example.com for details",
        "",
    ])
    def test_other_text_is_not_a_link(self, text):
        assert not is_link(text)


class TestNormalizeTags:

    def test_casefold_and_trim(self):
        assert normalize_tags(["  Web ", "API"]) == ["web", "api"]

    def test_inner_whitespace_collapsed(self):
        assert normalize_tags(["machine   learning"]) == ["machine learning"]

    def test_duplicates_keep_first(self):
        assert normalize_tags(["rust", "Rust", "web", "RUST"]) == ["rust", "web"]

    def test_empty_entries_dropped(self):
        assert normalize_tags(["", "  ", "web"]) == ["web"]

    def test_capped_at_max_tags(self):
        tags = normalize_tags([f"tag{i}" for i in range(10)])
        assert len(tags) == MAX_TAGS
        assert tags == ["tag0", "tag1", "tag2", "tag3", "tag4"]

    def test_none_and_string(self):
        assert normalize_tags(None) == []
        assert normalize_tags("Solo") == ["solo"]

    def test_overlong_tag_dropped(self):
        assert normalize_tags(["a" * 500, "ok"]) == ["ok"]


class TestValidateId:

    def test_uuid_hex_ok(self):
        validate_id("0123456789abcdef0123456789abcdef")

    @pytest.mark.parametrize("bad", ["", ".", "..", "a/b", "a\\b", "a\x00b", "x" * 300])
    def test_rejected(self, bad):
        with pytest.raises(ValueError):
            validate_id(bad)


class TestContentRecord:

    def test_new_stamps_fields(self):
        record = ContentRecord.new("hello", ["greeting"])
        assert len(record.id) == 32
        assert record.created_at == record.updated_at
        assert record.content_hash == content_hash("hello")
        assert record.source_url is None

    def test_new_ids_unique(self):
        ids = {ContentRecord.new("same", []).id for _ in range(50)}
        assert len(ids) == 50

    def test_dict_round_trip(self):
        record = ContentRecord.new("body", ["a", "b"], source_url="https://x.test/")
        assert ContentRecord.from_dict(record.to_dict()) == record

    def test_from_dict_computes_missing_hash(self):
        data = ContentRecord.new("body", []).to_dict()
        del data["content_hash"]
        assert ContentRecord.from_dict(data).content_hash == content_hash("body")

    def test_from_dict_missing_field(self):
        data = ContentRecord.new("body", []).to_dict()
        del data["tags"]
        with pytest.raises(StoreCorruptError, match="tags"):
            ContentRecord.from_dict(data)

    def test_from_dict_bad_tags(self):
        data = ContentRecord.new("body", []).to_dict()
        data["tags"] = "not-a-list"
        with pytest.raises(StoreCorruptError):
            ContentRecord.from_dict(data)

    def test_from_dict_not_a_dict(self):
        with pytest.raises(StoreCorruptError):
            ContentRecord.from_dict(["a", "b"])


class TestDeleteResult:

    def test_complete_without_cleanup_error(self):
        assert DeleteResult(id="x", found=True, removed_tags=["a"]).complete

    def test_incomplete_with_cleanup_error(self):
        result = DeleteResult(id="x", found=True, tag_cleanup_error="down")
        assert not result.complete
        assert result.to_dict()["complete"] is False
