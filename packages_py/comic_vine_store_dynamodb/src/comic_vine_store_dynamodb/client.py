"""
boto3 table construction.
"""
import logging
from typing import Any

import boto3

from .config import DynamoDBStoreConfig

logger = logging.getLogger(__name__)


def create_table(config: DynamoDBStoreConfig) -> Any:
    """
    Create a boto3 ``Table`` resource for the configured table.

    Credentials come from the standard boto3 chain (environment, profile,
    instance role). No table is created; only an existing one is bound.
    """
    kwargs = {}
    if config.region:
        kwargs["region_name"] = config.region
    if config.endpoint:
        kwargs["endpoint_url"] = config.endpoint
    resource = boto3.resource("dynamodb", **kwargs)
    logger.debug(f"Bound DynamoDB table {config.table_name}")
    return resource.Table(config.table_name)


def close_table(table: Any) -> None:
    """Close the HTTP connections behind a Table created by ``create_table``."""
    client = getattr(getattr(table, "meta", None), "client", None)
    close = getattr(client, "close", None)
    if close is not None:
        close()
