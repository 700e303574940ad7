"""
Single-table layout shared by every DynamoDB store.

Every row has a partition key ``PK`` and sort key ``SK`` prefixed with its
entity type, a numeric ``TTL`` (epoch seconds) for DynamoDB's native expiry,
a ``Data`` map, and ``GSI1PK``/``GSI1SK`` so expired rows of one entity type
can be found through the ``GSI1`` index.

Provisioning the table, the index and the TTL setting is left to the caller.
"""
from typing import Dict

# Attributes
PK = "PK"
SK = "SK"
TTL = "TTL"
DATA = "Data"
GSI1PK = "GSI1PK"
GSI1SK = "GSI1SK"

# Indexes
GSI1 = "GSI1"

# Entity types
CACHE = "CACHE"
DEDUPE = "DEDUPE"
RATELIMIT = "RATELIMIT"
ADAPTIVE = "ADAPTIVE"
EXPIRES = "EXPIRES"

# Sort keys
SORT_DATA = "DATA"
SORT_JOB = "JOB"
SORT_REQ = "REQ"
SORT_META = "META"
SORT_LAST_USER = "LAST_USER"

MAX_ITEM_SIZE_BYTES = 400 * 1024
DEFAULT_DEDUPE_TTL_SECONDS = 300

Key = Dict[str, str]


def cache_key(fingerprint: str) -> Key:
    return {PK: f"{CACHE}#{fingerprint}", SK: SORT_DATA}


def dedupe_key(fingerprint: str) -> Key:
    """
    Dedupe rows use a fixed sort key so that one conditional put per
    fingerprint decides the owner; the job id lives in ``Data.jobId``.
    """
    return {PK: f"{DEDUPE}#{fingerprint}", SK: SORT_JOB}


def rate_limit_partition(resource: str) -> str:
    return f"{RATELIMIT}#{resource}"


def rate_limit_sort_key(timestamp_ms: int, request_id: str) -> str:
    """Zero-padded so sort keys order by time and can be range queried."""
    return f"{SORT_REQ}#{timestamp_ms:013d}#{request_id}"


def rate_limit_window_start(cutoff_ms: int) -> str:
    """Lower bound (exclusive) for sort keys newer than ``cutoff_ms``."""
    # '~' sorts after any request id character
    return f"{SORT_REQ}#{cutoff_ms:013d}#~"


def parse_rate_limit_timestamp(sort_key: str) -> int:
    return int(sort_key.split("#")[1])


def adaptive_meta_key(resource: str) -> Key:
    return {PK: f"{ADAPTIVE}#{resource}", SK: SORT_META}


def adaptive_last_user_key(resource: str) -> Key:
    """Latest user request of a resource, kept after its request row expires."""
    return {PK: f"{ADAPTIVE}#{resource}", SK: SORT_LAST_USER}


def expiration_index_key(entity_type: str, ttl: int, pk: str) -> Key:
    return {GSI1PK: f"{EXPIRES}#{entity_type}", GSI1SK: f"{ttl:010d}#{pk}"}


def expiration_index_upper_bound(now_seconds: int) -> str:
    """Exclusive upper bound matching every row with ``TTL <= now_seconds``."""
    return f"{now_seconds + 1:010d}#"


def item_key(item: Dict) -> Key:
    return {PK: item[PK], SK: item[SK]}
