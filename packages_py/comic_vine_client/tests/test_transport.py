"""
Tests for HttpxTransport.
"""
import httpx
import pytest

from comic_vine_client import (
    ComicVineFilterError,
    ComicVineObjectNotFoundError,
    ComicVineRequestError,
    ComicVineUnauthorizedError,
    HttpxTransport,
)

URL = "https://comicvine.gamespot.com/api/issue/4000-1/?format=json&api_key=secret"


def make_transport(handler, **kwargs) -> HttpxTransport:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpxTransport(client=client, **kwargs)


class TestHttpxTransport:
    """Tests for response decoding and error mapping."""

    @pytest.mark.asyncio
    async def test_success(self) -> None:
        """Should return the decoded body."""
        transport = make_transport(
            lambda request: httpx.Response(200, json={"status_code": 1, "results": {"id": 1}})
        )
        assert await transport.get(URL) == {"status_code": 1, "results": {"id": 1}}

    @pytest.mark.parametrize(
        "status_code,error",
        [
            (100, ComicVineUnauthorizedError),
            (101, ComicVineObjectNotFoundError),
            (104, ComicVineFilterError),
        ],
    )
    @pytest.mark.asyncio
    async def test_api_status_errors(self, status_code, error) -> None:
        """Should map the body's status_code to an error."""
        transport = make_transport(
            lambda request: httpx.Response(200, json={"status_code": status_code, "error": "x"})
        )
        with pytest.raises(error):
            await transport.get(URL)

    @pytest.mark.asyncio
    async def test_http_401(self) -> None:
        """Should raise ComicVineUnauthorizedError for HTTP 401."""
        transport = make_transport(lambda request: httpx.Response(401))
        with pytest.raises(ComicVineUnauthorizedError):
            await transport.get(URL)

    @pytest.mark.asyncio
    async def test_http_error_redacts_api_key(self) -> None:
        """Should raise ComicVineRequestError without leaking the key."""
        transport = make_transport(
            lambda request: httpx.Response(500, json={"message": "upstream down"})
        )
        with pytest.raises(ComicVineRequestError) as exc_info:
            await transport.get(URL)
        assert "secret" not in exc_info.value.message
        assert "upstream down" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_connection_error(self) -> None:
        """Should wrap transport failures."""

        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(ComicVineRequestError, match="connection refused"):
            await make_transport(handler).get(URL)

    @pytest.mark.asyncio
    async def test_invalid_body(self) -> None:
        """Should reject bodies that are not JSON objects."""
        with pytest.raises(ComicVineRequestError):
            await make_transport(lambda request: httpx.Response(200, text="<html>")).get(URL)
        with pytest.raises(ComicVineRequestError):
            await make_transport(lambda request: httpx.Response(200, json=[1, 2])).get(URL)

    @pytest.mark.asyncio
    async def test_convert_case(self) -> None:
        """Should rewrite keys to camelCase when asked."""
        transport = make_transport(
            lambda request: httpx.Response(
                200, json={"status_code": 1, "results": [{"date_added": "2020"}]}
            ),
            convert_case=True,
        )
        assert await transport.get(URL) == {"statusCode": 1, "results": [{"dateAdded": "2020"}]}

    @pytest.mark.asyncio
    async def test_caller_client_is_not_closed(self) -> None:
        """Should leave a caller-provided client open."""
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200)))
        transport = HttpxTransport(client=client)
        await transport.close()
        assert client.is_closed is False
        await client.aclose()
