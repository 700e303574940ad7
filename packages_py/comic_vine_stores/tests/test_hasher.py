"""
Tests for request fingerprinting.
"""
import hashlib

from comic_vine_stores import UNSET, canonicalize, hash_request, sort_params


class TestSortParams:
    """Tests for sort_params."""

    def test_sorts_nested_mapping_keys(self) -> None:
        """Should sort keys at every depth."""
        result = sort_params({"b": {"y": 1, "x": 2}, "a": 1})
        assert list(result) == ["a", "b"]
        assert list(result["b"]) == ["x", "y"]

    def test_preserves_list_order(self) -> None:
        """Should keep list order while sorting mappings inside lists."""
        result = sort_params({"items": [3, {"z": 1, "a": 2}, 1]})
        assert result["items"][0] == 3
        assert list(result["items"][1]) == ["a", "z"]
        assert result["items"][2] == 1

    def test_drops_unset_values(self) -> None:
        """Should drop keys whose value is UNSET."""
        assert sort_params({"a": UNSET, "b": 1}) == {"b": 1}

    def test_keeps_none_values(self) -> None:
        """Should keep keys whose value is None."""
        assert sort_params({"a": None}) == {"a": None}

    def test_unset_list_item_becomes_none(self) -> None:
        """Should render an UNSET list slot as None."""
        assert sort_params([1, UNSET]) == [1, None]


class TestHashRequest:
    """Tests for hash_request."""

    def test_returns_sha256_hex(self) -> None:
        """Should return the SHA-256 of the canonical form."""
        expected = hashlib.sha256(canonicalize("issues", {"a": 1}).encode()).hexdigest()
        assert hash_request("issues", {"a": 1}) == expected
        assert len(expected) == 64

    def test_canonical_form_is_compact_json(self) -> None:
        """Should serialize endpoint and sorted params without whitespace."""
        assert canonicalize("issues", {"b": 2, "a": 1}) == (
            '{"endpoint":"issues","params":{"a":1,"b":2}}'
        )

    def test_key_order_does_not_matter(self) -> None:
        """Should produce identical fingerprints regardless of insertion order."""
        first = hash_request("issues", {"limit": 10, "filter": {"name": "x", "id": 1}})
        second = hash_request("issues", {"filter": {"id": 1, "name": "x"}, "limit": 10})
        assert first == second

    def test_different_values_differ(self) -> None:
        """Should produce different fingerprints for different values."""
        assert hash_request("e", {"a": 1}) != hash_request("e", {"a": 2})

    def test_different_endpoints_differ(self) -> None:
        """Should include the endpoint in the fingerprint."""
        assert hash_request("issues", {}) != hash_request("volumes", {})

    def test_unset_equals_omitted(self) -> None:
        """Should treat UNSET keys as omitted."""
        assert hash_request("e", {"a": UNSET}) == hash_request("e", {})

    def test_none_differs_from_omitted(self) -> None:
        """Should distinguish None from an omitted key."""
        assert hash_request("e", {"a": None}) != hash_request("e", {})

    def test_missing_params_equal_empty(self) -> None:
        """Should treat missing params as an empty mapping."""
        assert hash_request("e") == hash_request("e", {})

    def test_array_order_matters(self) -> None:
        """Should not reorder arrays."""
        assert hash_request("e", {"ids": [1, 2]}) != hash_request("e", {"ids": [2, 1]})
