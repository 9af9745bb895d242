"""Live AWS resource checks.

The provisioning tool's own state is not trusted here: every check goes to
the provider's control plane. A definite "not found" answer is reported as
absent; any other provider or network error is inconclusive, never absent.
"""

import logging
from enum import Enum
from typing import Optional

import boto3
import requests
from botocore.exceptions import BotoCoreError, ClientError

logger = logging.getLogger(__name__)


class ResourceKind(Enum):
    """Resource kinds the harness can look up."""
    S3_BUCKET = 's3-bucket'
    DYNAMODB_TABLE = 'dynamodb-table'
    CLOUDFRONT_DISTRIBUTION = 'cloudfront-distribution'


# Error codes meaning "this resource does not exist"
NOT_FOUND_CODES = {
    ResourceKind.S3_BUCKET: {'404', 'NoSuchBucket', 'NotFound'},
    ResourceKind.DYNAMODB_TABLE: {'ResourceNotFoundException'},
    ResourceKind.CLOUDFRONT_DISTRIBUTION: {'NoSuchDistribution'},
}


class ResourceAbsentError(AssertionError):
    """The provider reports that an expected resource does not exist."""

    def __init__(self, kind: ResourceKind, identifier: str, region: str):
        self.kind = kind
        self.identifier = identifier
        self.region = region
        super().__init__(f"{kind.value} '{identifier}' does not exist in {region}")


class AssertionInconclusiveError(Exception):
    """The provider could not answer; existence is unknown."""

    def __init__(self, kind: str, identifier: str, detail: str):
        self.kind = kind
        self.identifier = identifier
        self.detail = detail
        super().__init__(f"Could not check {kind} '{identifier}': {detail}")


class AwsResourceClient:
    """Existence checks against the AWS control plane.

    Args:
        region: Region the stack was applied to
        session: Optional boto3 session (default: a new session for region)
    """

    def __init__(self, region: str, session: Optional[boto3.session.Session] = None):
        self.region = region
        self._session = session or boto3.session.Session(region_name=region)
        self._clients: dict = {}

    def client(self, service: str):
        """Return a cached boto3 client for service."""
        if service not in self._clients:
            self._clients[service] = self._session.client(service, region_name=self.region)
        return self._clients[service]

    def s3_bucket_exists(self, bucket: str) -> bool:
        return self._lookup(ResourceKind.S3_BUCKET, bucket,
                           lambda: self.client('s3').head_bucket(Bucket=bucket))

    def dynamodb_table_exists(self, table: str) -> bool:
        return self._lookup(ResourceKind.DYNAMODB_TABLE, table,
                           lambda: self.client('dynamodb').describe_table(TableName=table))

    def cloudfront_distribution_exists(self, distribution_id: str) -> bool:
        return self._lookup(ResourceKind.CLOUDFRONT_DISTRIBUTION, distribution_id,
                           lambda: self.client('cloudfront').get_distribution(Id=distribution_id))

    def exists(self, kind: ResourceKind, identifier: str) -> bool:
        """Dispatch an existence check by resource kind."""
        checks = {
            ResourceKind.S3_BUCKET: self.s3_bucket_exists,
            ResourceKind.DYNAMODB_TABLE: self.dynamodb_table_exists,
            ResourceKind.CLOUDFRONT_DISTRIBUTION: self.cloudfront_distribution_exists,
        }
        return checks[kind](identifier)

    def require_exists(self, kind: ResourceKind, identifier: str) -> None:
        """Raise ResourceAbsentError unless the resource exists."""
        if not self.exists(kind, identifier):
            raise ResourceAbsentError(kind, identifier, self.region)

    def _lookup(self, kind: ResourceKind, identifier: str, call) -> bool:
        logger.debug(f"Checking {kind.value} '{identifier}' in {self.region}")
        try:
            call()
        except ClientError as e:
            code = str(e.response.get('Error', {}).get('Code', ''))
            if code in NOT_FOUND_CODES[kind]:
                logger.info(f"{kind.value} '{identifier}' not found in {self.region}")
                return False
            raise AssertionInconclusiveError(kind.value, identifier, f"{code}: {e}") from e
        except BotoCoreError as e:
            raise AssertionInconclusiveError(kind.value, identifier, str(e)) from e
        logger.info(f"{kind.value} '{identifier}' exists in {self.region}")
        return True


def check_endpoint(url: str, method: str = 'OPTIONS', timeout: int = 10) -> int:
    """Send one HTTP request to url and return the status code.

    Raises:
        AssertionInconclusiveError: the endpoint could not be reached
    """
    try:
        resp = requests.request(method, url, timeout=timeout)
    except requests.exceptions.RequestException as e:
        raise AssertionInconclusiveError('http-endpoint', url, str(e)) from e
    logger.info(f"{method} {url} -> {resp.status_code}")
    return resp.status_code
