"""
Tests for client options.
"""
import pytest

from comic_vine_client import ClientOptions, OptionsValidationError, load_options
from comic_vine_stores import RequestPriority


class TestLoadOptions:
    """Tests for load_options validation."""

    def test_defaults(self) -> None:
        """Should fill every option with its default."""
        options = load_options()
        assert options.base_url == "https://comicvine.gamespot.com/api/"
        assert options.throw_on_rate_limit is True
        assert options.max_wait_time_ms == 60_000
        assert options.default_priority == RequestPriority.USER

    def test_partial_mapping(self) -> None:
        """Should merge a partial mapping over the defaults."""
        options = load_options({"base_url": "http://localhost/api", "throw_on_rate_limit": False})
        assert options.base_url == "http://localhost/api/"
        assert options.throw_on_rate_limit is False

    def test_model_passthrough(self) -> None:
        options = ClientOptions(max_wait_time_ms=5)
        assert load_options(options) is options

    @pytest.mark.parametrize(
        "options,path",
        [
            ({"base_url": "not a url"}, "base_url"),
            ({"base_url": "ftp://example.com/"}, "base_url"),
            ({"max_wait_time_ms": -1}, "max_wait_time_ms"),
            ({"default_priority": "urgent"}, "default_priority"),
        ],
    )
    def test_invalid(self, options, path) -> None:
        """Should report the failing property and problem."""
        with pytest.raises(OptionsValidationError) as exc_info:
            load_options(options)
        assert exc_info.value.path == path
        assert exc_info.value.message.startswith(f"Property: {path}, Problem: ")
