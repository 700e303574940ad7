"""
Comic Vine URL building.
"""
import re
from typing import Any, Iterable, List, Mapping, Optional, Tuple
from urllib.parse import urlencode, urljoin, urlsplit

from .options import DEFAULT_BASE_URL
from .resources import get_resource, resource_for_segment

QueryParam = Tuple[str, str]

_CAMEL_BOUNDARY = re.compile(r"[A-Z]")


def to_snake_case(value: str) -> str:
    return _CAMEL_BOUNDARY.sub(lambda m: f"_{m.group(0).lower()}", value)


class ComicVineUrlBuilder:
    """
    Renders resource requests into fully-qualified API URLs.

    Example:
        builder = ComicVineUrlBuilder("my-key")
        builder.retrieve("issue", 719442)
        # https://comicvine.gamespot.com/api/issue/4000-719442/?format=json&api_key=my-key
    """

    def __init__(self, api_key: str, base_url: str = DEFAULT_BASE_URL) -> None:
        self.api_key = api_key
        self.base_url = base_url if base_url.endswith("/") else f"{base_url}/"

    def _base_params(self) -> List[QueryParam]:
        return [("format", "json"), ("api_key", self.api_key)]

    def _build(self, path: str, params: Iterable[Optional[QueryParam]]) -> str:
        query = urlencode([p for p in params if p is not None])
        return f"{urljoin(self.base_url, path)}?{query}"

    @staticmethod
    def _field_list(field_list: Optional[Iterable[str]]) -> Optional[QueryParam]:
        if not field_list:
            return None
        return ("field_list", ",".join(to_snake_case(str(f)) for f in field_list))

    @staticmethod
    def _number(name: str, value: Optional[int]) -> Optional[QueryParam]:
        return (name, str(value)) if value else None

    @staticmethod
    def _sort(sort: Optional[Tuple[str, str]]) -> Optional[QueryParam]:
        if not sort:
            return None
        field, direction = sort
        return ("sort", f"{to_snake_case(field)}:{direction}")

    @staticmethod
    def _filter(filter: Optional[Mapping[str, Any]]) -> Optional[QueryParam]:
        if not filter:
            return None
        return ("filter", ",".join(f"{to_snake_case(k)}:{v}" for k, v in filter.items()))

    def retrieve(
        self, resource_type: str, id: int, field_list: Optional[Iterable[str]] = None
    ) -> str:
        """URL for a single resource, e.g. ``issue/4000-719442/``."""
        resource = get_resource(resource_type)
        path = f"{resource.detail_name}/{resource.type_id}-{id}/"
        return self._build(path, [*self._base_params(), self._field_list(field_list)])

    def list(
        self,
        resource_type: str,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        sort: Optional[Tuple[str, str]] = None,
        field_list: Optional[Iterable[str]] = None,
        filter: Optional[Mapping[str, Any]] = None,
    ) -> str:
        """
        URL for a page of resources.

        Args:
            resource_type: Resource name, e.g. ``"issue"``
            limit: Page size (the API caps it at 100)
            offset: Index of the first result
            sort: ``(field, "asc" | "desc")``
            field_list: Fields to return
            filter: Field to value mapping, rendered as ``field:value,...``
        """
        resource = get_resource(resource_type)
        return self._build(
            f"{resource.list_name}/",
            [
                *self._base_params(),
                self._number("limit", limit),
                self._number("offset", offset),
                self._sort(sort),
                self._field_list(field_list),
                self._filter(filter),
            ],
        )

    def resource_name(self, url: str) -> str:
        """
        Rate limit bucket for a URL: the first path segment after the API
        root, mapped back to its resource name when it is a known endpoint.
        """
        path = urlsplit(url).path
        root = urlsplit(self.base_url).path
        if path.startswith(root):
            path = path[len(root):]
        segment = path.strip("/").split("/", 1)[0]
        return resource_for_segment(segment) or segment or "default"
