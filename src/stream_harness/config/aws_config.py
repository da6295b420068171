"""Kinesis client construction for AWS and LocalStack."""

import logging
from typing import Any, Dict

import boto3
from botocore.config import Config

from .settings import AWSConfig

logger = logging.getLogger(__name__)

# LocalStack accepts any credentials but boto3 refuses to sign without some
LOCALSTACK_CREDENTIALS = {'aws_access_key_id': 'test', 'aws_secret_access_key': 'test'}


class AWSClientManager:
    """Owns the single Kinesis client shared by stream management and the producer."""

    def __init__(self, aws_config: AWSConfig):
        self.config = aws_config
        self._session = boto3.Session(region_name=aws_config.region)
        self._kinesis_client = None

        # botocore retries throttling on its own; record-level retries stay in the producer
        self._boto_config = Config(
            retries={
                'max_attempts': 3,
                'mode': 'adaptive'
            },
            max_pool_connections=10,
            connect_timeout=10,
            read_timeout=30
        )

    @property
    def uses_localstack(self) -> bool:
        return bool(self.config.endpoint_url)

    def _client_kwargs(self) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {'config': self._boto_config}

        if self.uses_localstack:
            kwargs['endpoint_url'] = self.config.endpoint_url
            kwargs.update(LOCALSTACK_CREDENTIALS)

        # Explicit keys win; otherwise the default credential chain applies
        if self.config.access_key_id and self.config.secret_access_key:
            kwargs['aws_access_key_id'] = self.config.access_key_id
            kwargs['aws_secret_access_key'] = self.config.secret_access_key

        return kwargs

    @property
    def kinesis_client(self):
        """Get or create the Kinesis client."""
        if self._kinesis_client is None:
            self._kinesis_client = self._session.client('kinesis', **self._client_kwargs())

            if self.uses_localstack:
                logger.info(f"Created LocalStack Kinesis client: {self.config.endpoint_url}")
            else:
                logger.info(f"Created AWS Kinesis client in region: {self.config.region}")

        return self._kinesis_client

    def close(self) -> None:
        """Release the client's connection pool."""
        if self._kinesis_client is not None:
            self._kinesis_client.close()
            self._kinesis_client = None
            logger.debug("Kinesis client closed")
