"""
HTTP transport for the Comic Vine API using httpx.
"""
import logging
import re
from typing import Any, Dict, Optional, Type

import httpx

from .errors import (
    ComicVineError,
    ComicVineFilterError,
    ComicVineJsonpCallbackMissingError,
    ComicVineObjectNotFoundError,
    ComicVineRequestError,
    ComicVineSubscriberOnlyError,
    ComicVineUnauthorizedError,
    ComicVineUrlFormatError,
)

logger = logging.getLogger(__name__)

# Comic Vine reports errors in the body's status_code, usually with HTTP 200
STATUS_OK = 1
STATUS_ERRORS: Dict[int, Type[ComicVineError]] = {
    100: ComicVineUnauthorizedError,
    101: ComicVineObjectNotFoundError,
    102: ComicVineUrlFormatError,
    103: ComicVineJsonpCallbackMissingError,
    104: ComicVineFilterError,
    105: ComicVineSubscriberOnlyError,
}

_SNAKE_BOUNDARY = re.compile(r"[-_]([a-zA-Z])")


def to_camel_case(value: str) -> str:
    return _SNAKE_BOUNDARY.sub(lambda m: m.group(1).upper(), value)


def convert_keys_to_camel_case(value: Any) -> Any:
    if isinstance(value, dict):
        return {to_camel_case(k): convert_keys_to_camel_case(v) for k, v in value.items()}
    if isinstance(value, list):
        return [convert_keys_to_camel_case(item) for item in value]
    return value


class HttpxTransport:
    """
    Performs GET requests and turns Comic Vine error responses into
    ComicVineError subclasses.

    A client passed in by the caller is never closed by the transport.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
        convert_case: bool = False,
    ) -> None:
        """
        Args:
            client: Existing httpx.AsyncClient to use
            timeout: Request timeout in seconds for a client created here
            convert_case: Rewrite snake_case response keys to camelCase
        """
        self._client = client if client is not None else httpx.AsyncClient(timeout=timeout)
        self._owns_client = client is None
        self._convert_case = convert_case

    async def get(self, url: str) -> Dict[str, Any]:
        """
        Fetch and decode a JSON response.

        Raises:
            ComicVineUnauthorizedError: HTTP 401 or API status 100
            ComicVineError: Other API status errors
            ComicVineRequestError: Transport failures and non-success HTTP statuses
        """
        try:
            response = await self._client.get(url)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 401:
                raise ComicVineUnauthorizedError() from e
            raise ComicVineRequestError(_redact(_describe(e))) from e
        except (httpx.HTTPError, ValueError) as e:
            raise ComicVineRequestError(_redact(str(e))) from e

        if not isinstance(data, dict):
            raise ComicVineRequestError("Unexpected response body")

        error_class = STATUS_ERRORS.get(data.get("status_code", STATUS_OK))
        if error_class is not None:
            logger.debug(f"HttpxTransport: API status {data.get('status_code')} for {_redact(url)}")
            raise error_class()

        return convert_keys_to_camel_case(data) if self._convert_case else data

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "HttpxTransport":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


def _describe(error: httpx.HTTPStatusError) -> str:
    message = str(error)
    try:
        body = error.response.json()
    except ValueError:
        return message
    detail = body.get("message") if isinstance(body, dict) else None
    return f"{message}, {detail}" if detail else message


def _redact(url: str) -> str:
    return re.sub(r"api_key=[^&]*", "api_key=***", url)
