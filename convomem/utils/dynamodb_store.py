"""
Amazon DynamoDB record store with retry logic and error handling.

Items are laid out as ``{key: S, value: S, expires_at: N}``. ``expires_at``
should be configured as the table's TTL attribute; it is also checked on
read because DynamoDB removes expired items lazily.
"""

import random
import time
from typing import Any, Callable, Dict, Optional

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from .config import StoreConfig
from .logging_config import get_logger
from .record_store import RecordStoreError

logger = get_logger(__name__)

# Errors worth retrying; anything else (validation, missing table) fails fast
RETRYABLE_ERROR_CODES = {
    'ProvisionedThroughputExceededException',
    'ThrottlingException',
    'RequestLimitExceeded',
    'InternalServerError',
    'ServiceUnavailable',
}


class DynamoDBRecordStore:
    """RecordStore backed by a single DynamoDB table."""

    def __init__(self, config: StoreConfig, client: Any = None, clock: Callable[[], float] = time.time):
        """
        Initialize DynamoDB record store.

        Args:
            config: StoreConfig instance with connection parameters
            client: Pre-built boto3 DynamoDB client (optional, mainly for tests)
            clock: Time source in epoch seconds
        """
        self.config = config
        self.table_name = config.table_name
        self._clock = clock

        if client is None:
            # Retries are handled here, so botocore's own retry layer is kept minimal
            boto_config = BotoConfig(connect_timeout=2, read_timeout=5, retries={'max_attempts': 1, 'mode': 'standard'})
            client = boto3.client(service_name='dynamodb',
                                  region_name=config.region,
                                  endpoint_url=config.endpoint_url,
                                  config=boto_config)
        self.client = client

        logger.info(f'Initialized DynamoDB record store with table: {self.table_name}')

    def _call_with_retry(self, operation: str, **kwargs) -> Dict[str, Any]:
        """
        Make a DynamoDB API call with retry logic.

        Args:
            operation: Client method name (get_item, put_item, ...)
            **kwargs: Request parameters

        Returns:
            Response dictionary from DynamoDB

        Raises:
            RecordStoreError: If all retry attempts fail or the error is not retryable
        """
        attempts = max(1, self.config.retry_attempts)

        for attempt in range(attempts):
            try:
                logger.debug(f'DynamoDB {operation} attempt {attempt + 1}/{attempts}')
                return getattr(self.client, operation)(**kwargs)

            except ClientError as e:
                code = e.response.get('Error', {}).get('Code', '')
                if code not in RETRYABLE_ERROR_CODES:
                    raise RecordStoreError(f'DynamoDB {operation} failed: {e}')
                logger.warning(f'DynamoDB {operation} attempt {attempt + 1}/{attempts} throttled: {code}')

            except BotoCoreError as e:
                logger.warning(f'DynamoDB {operation} attempt {attempt + 1}/{attempts} failed: {e}')

            if attempt < attempts - 1:
                # Exponential backoff with jitter
                delay = self.config.retry_delay * (2**attempt) + random.uniform(0, self.config.retry_delay)
                time.sleep(delay)

        raise RecordStoreError(f'DynamoDB {operation} failed after {attempts} attempts')

    def get(self, key: str) -> Optional[str]:
        response = self._call_with_retry('get_item',
                                         TableName=self.table_name,
                                         Key={'key': {'S': key}},
                                         ConsistentRead=True)
        item = response.get('Item')
        if not item:
            return None

        expires_at = item.get('expires_at', {}).get('N')
        if expires_at is not None and int(expires_at) <= int(self._clock()):
            logger.debug(f'Ignoring expired item: {key}')
            return None

        return item.get('value', {}).get('S')

    def put(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        item = {'key': {'S': key}, 'value': {'S': value}}
        if ttl_seconds:
            item['expires_at'] = {'N': str(int(self._clock()) + int(ttl_seconds))}

        self._call_with_retry('put_item', TableName=self.table_name, Item=item)

    def delete(self, key: str) -> None:
        self._call_with_retry('delete_item', TableName=self.table_name, Key={'key': {'S': key}})

    def health_check(self) -> bool:
        """
        Perform a health check on the DynamoDB table.

        Returns:
            True if the table is reachable and active, False otherwise
        """
        try:
            response = self._call_with_retry('describe_table', TableName=self.table_name)
            return response.get('Table', {}).get('TableStatus') == 'ACTIVE'

        except Exception as e:
            logger.error(f'DynamoDB health check failed: {e}')
            return False
