import logging
import typing

import boto3
from botocore.exceptions import ClientError

_LOGGER = logging.getLogger(__name__)

JWT_SECRET_KEY = "JWT_SECRET"


class SecretsTable:
    """
    Read-only access to the secrets table. Items are written by infrastructure scripts.

    Schema:
        - PK: secretKey (String), e.g. "JWT_SECRET"
        - secretValue (String)

    Values are cached per (table, key) for the lifetime of the Lambda container.
    """

    _cache: typing.ClassVar[dict[tuple[str, str], str]] = {}

    def __init__(self, table_name: str):
        self.table_name = table_name
        self.client = boto3.resource("dynamodb")
        self.table = self.client.Table(table_name)

    @classmethod
    def clear_cache(cls) -> None:
        cls._cache.clear()

    def _fetch_secret(self, secret_key: str) -> str:
        try:
            response = self.table.get_item(Key={"secretKey": secret_key})
        except ClientError as e:
            _LOGGER.error(f"Error reading secret {secret_key} from {self.table_name}: {e}")
            raise KeyError(f"Failed to read secret '{secret_key}'") from e

        secret_value = response.get("Item", {}).get("secretValue")
        if not secret_value:
            _LOGGER.error(f"Secret '{secret_key}' missing or empty in {self.table_name}")
            raise KeyError(f"Secret '{secret_key}' not found in secrets table")
        return secret_value

    def get_secret(self, secret_key: str) -> str:
        """
        :raises KeyError: if the secret is missing, empty or unreadable.
        """
        cache_key = (self.table_name, secret_key)
        if cache_key not in self._cache:
            _LOGGER.info(f"Fetching secret '{secret_key}' from DynamoDB.")
            self._cache[cache_key] = self._fetch_secret(secret_key)
        return self._cache[cache_key]

    def get_jwt_secret_key(self) -> str:
        """The key the auth service signs access tokens with."""
        return self.get_secret(JWT_SECRET_KEY)
