"""
Comic Vine resource types and their URL names.
"""
from dataclasses import dataclass
from typing import Dict, Optional


@dataclass(frozen=True)
class ResourceDefinition:
    name: str
    """Resource identifier, also used as the rate limit bucket"""

    type_id: int
    """Numeric prefix of detail ids, as in ``issue/4000-719442``"""

    detail_name: str
    """Path segment of the detail endpoint"""

    list_name: str
    """Path segment of the list endpoint"""


RESOURCES: Dict[str, ResourceDefinition] = {
    definition.name: definition
    for definition in (
        ResourceDefinition("character", 4005, "character", "characters"),
        ResourceDefinition("concept", 4015, "concept", "concepts"),
        ResourceDefinition("episode", 4070, "episode", "episodes"),
        ResourceDefinition("issue", 4000, "issue", "issues"),
        ResourceDefinition("location", 4020, "location", "locations"),
        ResourceDefinition("movie", 4025, "movie", "movies"),
        ResourceDefinition("origin", 4030, "origin", "origins"),
        ResourceDefinition("person", 4040, "person", "people"),
        ResourceDefinition("power", 4035, "power", "powers"),
        ResourceDefinition("promo", 1700, "promo", "promos"),
        ResourceDefinition("publisher", 4010, "publisher", "publishers"),
        ResourceDefinition("series", 4075, "series", "series_list"),
        ResourceDefinition("story_arc", 4045, "story_arc", "story_arcs"),
        ResourceDefinition("team", 4060, "team", "teams"),
        ResourceDefinition("thing", 4055, "object", "objects"),
        ResourceDefinition("video", 2300, "video", "videos"),
        ResourceDefinition("video_category", 2320, "video_category", "video_categories"),
        ResourceDefinition("video_type", 2320, "video_type", "video_types"),
        ResourceDefinition("volume", 4050, "volume", "volumes"),
    )
}

# Detail and list path segments back to the resource name
_BY_SEGMENT: Dict[str, str] = {}
for _definition in RESOURCES.values():
    _BY_SEGMENT[_definition.detail_name] = _definition.name
    _BY_SEGMENT[_definition.list_name] = _definition.name


def get_resource(name: str) -> ResourceDefinition:
    """
    Raises:
        KeyError: Unknown resource name
    """
    try:
        return RESOURCES[name]
    except KeyError:
        raise KeyError(f"Resource type ({name}) not found") from None


def resource_for_segment(segment: str) -> Optional[str]:
    """Resource name for a detail or list path segment, if known."""
    return _BY_SEGMENT.get(segment)
