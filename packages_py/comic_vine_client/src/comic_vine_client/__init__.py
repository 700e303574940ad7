"""
Comic Vine API client with cache, dedupe and rate limit store support.
"""
from .errors import (
    ComicVineError,
    ComicVineRequestError,
    ComicVineUnauthorizedError,
    ComicVineObjectNotFoundError,
    ComicVineUrlFormatError,
    ComicVineJsonpCallbackMissingError,
    ComicVineFilterError,
    ComicVineSubscriberOnlyError,
    OptionsValidationError,
    RateLimitExceededError,
)
from .options import DEFAULT_BASE_URL, ClientOptions, ClientOptionsInput, load_options
from .resources import RESOURCES, ResourceDefinition, get_resource, resource_for_segment
from .url_builder import ComicVineUrlBuilder, to_snake_case
from .transport import HttpxTransport, STATUS_ERRORS, convert_keys_to_camel_case
from .orchestrator import StoreBackedClient, Page, Transport


__all__ = [
    # Errors
    "ComicVineError",
    "ComicVineRequestError",
    "ComicVineUnauthorizedError",
    "ComicVineObjectNotFoundError",
    "ComicVineUrlFormatError",
    "ComicVineJsonpCallbackMissingError",
    "ComicVineFilterError",
    "ComicVineSubscriberOnlyError",
    "OptionsValidationError",
    "RateLimitExceededError",
    # Options
    "DEFAULT_BASE_URL",
    "ClientOptions",
    "ClientOptionsInput",
    "load_options",
    # Resources
    "RESOURCES",
    "ResourceDefinition",
    "get_resource",
    "resource_for_segment",
    # HTTP
    "ComicVineUrlBuilder",
    "to_snake_case",
    "HttpxTransport",
    "STATUS_ERRORS",
    "convert_keys_to_camel_case",
    # Client
    "StoreBackedClient",
    "Page",
    "Transport",
]

__version__ = "1.0.0"
