"""
S3-compatible object storage gateway (Cloudflare R2 / AWS S3)
Pure request/response: no local state and no retries at this layer
"""

import os
import logging
from typing import List, Optional

import aioboto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from .auth import RequestContext
from .errors import StorageError

logger = logging.getLogger(__name__)

# R2 account endpoints look like https://<account>.r2.cloudflarestorage.com
S3_ENDPOINT_URL = os.getenv('S3_ENDPOINT_URL') or None
S3_REGION = os.getenv('AWS_S3_REGION') or os.getenv('AWS_REGION', 'auto')
MEDIA_BUCKET = os.getenv('FLOCK_MEDIA_BUCKET', 'moments')
COVER_BUCKET = os.getenv('FLOCK_COVER_BUCKET', 'covers')
PRESIGN_TTL_SECONDS = int(os.getenv('PRESIGN_TTL_SECONDS', '3600'))


def _storage_error(message: str, exc: Exception) -> StorageError:
    if isinstance(exc, ClientError):
        err = exc.response.get('Error', {})
        status = exc.response.get('ResponseMetadata', {}).get('HTTPStatusCode')
        return StorageError(message, code=err.get('Code') or 'STORAGE_ERROR', status=status)
    return StorageError(message, code=exc.__class__.__name__)


class StorageGateway:
    """Thin operation set over one S3-compatible endpoint, parameterized by bucket"""

    def __init__(self, session=None, endpoint_url: Optional[str] = S3_ENDPOINT_URL, region: str = S3_REGION):
        self.session = session or aioboto3.Session()
        self.endpoint_url = endpoint_url
        self.region = region

    def _client(self):
        return self.session.client(
            's3',
            endpoint_url=self.endpoint_url,
            region_name=self.region,
            aws_access_key_id=os.getenv('AWS_ACCESS_KEY_ID'),
            aws_secret_access_key=os.getenv('AWS_SECRET_ACCESS_KEY'),
            config=Config(signature_version='s3v4'),
        )

    def public_path(self, bucket: str, key: str) -> str:
        """Public path recorded alongside a moment (not a readable URL for private buckets)"""
        base = (self.endpoint_url or f'https://s3.{self.region}.amazonaws.com').rstrip('/')
        return f'{base}/{bucket}/{key}'

    async def put_object(self, ctx: RequestContext, bucket: str, key: str, data: bytes, content_type: str) -> dict:
        try:
            async with self._client() as client:
                response = await client.put_object(Bucket=bucket, Key=key, Body=data, ContentType=content_type)
        except (ClientError, BotoCoreError) as e:
            logger.warning({'msg': 'put_object_failed', 'bucket': bucket, 'key': key, 'user_id': ctx.user_id, 'error': str(e)})
            raise _storage_error('Failed to upload file', e)

        status = response.get('ResponseMetadata', {}).get('HTTPStatusCode')
        if status != 200:
            logger.warning({'msg': 'put_object_rejected', 'bucket': bucket, 'key': key, 'status': status})
            raise StorageError('Failed to upload file', code='UPLOAD_REJECTED', status=status)
        return response

    async def delete_object(self, ctx: RequestContext, bucket: str, key: str) -> dict:
        try:
            async with self._client() as client:
                return await client.delete_object(Bucket=bucket, Key=key)
        except (ClientError, BotoCoreError) as e:
            logger.warning({'msg': 'delete_object_failed', 'bucket': bucket, 'key': key, 'user_id': ctx.user_id, 'error': str(e)})
            raise _storage_error('Failed to delete file', e)

    async def presign(self, ctx: RequestContext, bucket: str, key: str, ttl: int = PRESIGN_TTL_SECONDS) -> str:
        """Time-limited read URL; object existence is not checked"""
        try:
            async with self._client() as client:
                return await client.generate_presigned_url(
                    'get_object',
                    Params={'Bucket': bucket, 'Key': key},
                    ExpiresIn=ttl,
                )
        except (ClientError, BotoCoreError) as e:
            logger.error({'msg': 'presign_failed', 'bucket': bucket, 'key': key, 'error': str(e)})
            raise _storage_error('Failed to generate presigned URL', e)

    async def list_buckets(self, ctx: RequestContext) -> List[str]:
        try:
            async with self._client() as client:
                response = await client.list_buckets()
        except (ClientError, BotoCoreError) as e:
            raise _storage_error('Failed to list buckets', e)
        return [b.get('Name', '') for b in response.get('Buckets', [])]


# Global instance
storage = StorageGateway()


def get_storage() -> StorageGateway:
    """FastAPI dependency, overridden in tests"""
    return storage
