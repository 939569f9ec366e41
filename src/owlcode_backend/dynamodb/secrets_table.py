import logging
import typing

import boto3
from botocore.exceptions import ClientError

_LOGGER = logging.getLogger(__name__)

JWT_SECRET = "JWT_SECRET"


class SecretsTable:
    """
    Read-only view of the deployment-provisioned Secrets DynamoDB table.

    Table Schema:
      - PK: secretKey
      - secretValue: the secret itself

    Values are cached per (table, key) for the life of the Lambda container, so token
    verification hits DynamoDB once per cold start.
    """

    _cache: typing.ClassVar[dict[tuple[str, str], str]] = {}

    def __init__(self, table_name: str):
        self.client = boto3.resource("dynamodb")
        self.table = self.client.Table(table_name)
        self.table_name = table_name

    @classmethod
    def clear_cache(cls) -> None:
        cls._cache.clear()

    def get_secret(self, secret_key: str) -> str:
        """:raises KeyError: If the secret can't be read or has no value."""
        cache_key = (self.table_name, secret_key)
        cached = self._cache.get(cache_key)
        if cached is not None:
            return cached

        _LOGGER.info(f"Loading secret '{secret_key}' from {self.table_name}")
        try:
            item = self.table.get_item(Key={"secretKey": secret_key}, ConsistentRead=True).get("Item") or {}
        except ClientError as e:
            _LOGGER.error(f"Could not read secret '{secret_key}': {e.response['Error']['Message']}")
            raise KeyError(f"Secret '{secret_key}' could not be read") from e

        secret_value = item.get("secretValue")
        if not secret_value:
            _LOGGER.error(f"Secret '{secret_key}' is missing or empty in {self.table_name}")
            raise KeyError(f"Secret '{secret_key}' is not provisioned")

        self._cache[cache_key] = secret_value
        return secret_value

    def get_jwt_secret_key(self) -> str:
        return self.get_secret(JWT_SECRET)
