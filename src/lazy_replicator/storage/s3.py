"""
AWS S3 storage adapter (backend B)
"""

import logging
from pathlib import Path
from typing import Iterable, List, Optional

import aioboto3
from botocore.exceptions import BotoCoreError, ClientError

from ..config import RetryPolicy, S3Credentials
from ..exceptions import BackendError, ObjectNotFoundError, ReplicatorError
from .base import ObjectEntry, PathLike, StorageAdapter, guess_content_type, remove_partial_file

logger = logging.getLogger(__name__)

# DeleteObjects accepts at most 1000 keys per request
DELETE_BATCH_SIZE = 1000

NOT_FOUND_CODES = {'404', 'NoSuchKey', 'NotFound'}


def _is_not_found(error: ClientError) -> bool:
    return str(error.response.get('Error', {}).get('Code')) in NOT_FOUND_CODES


class S3Adapter(StorageAdapter):
    """AWS S3 storage adapter"""

    name = 's3'

    def __init__(self, retry_policy: Optional[RetryPolicy] = None):
        super().__init__(retry_policy)
        self.session: Optional[aioboto3.Session] = None
        self.region: Optional[str] = None
        self.endpoint_url: Optional[str] = None

    @property
    def scope_kind(self) -> str:
        return 'bucket'

    def initialize(self, credentials: S3Credentials, default_bucket_name: Optional[str] = None) -> None:
        """Create the session used for every subsequent call"""
        self.session = aioboto3.Session(
            aws_access_key_id=credentials.access_key_id,
            aws_secret_access_key=credentials.secret_access_key,
            region_name=credentials.region,
        )
        self.region = credentials.region
        self.endpoint_url = credentials.endpoint_url
        self.default_scope = default_bucket_name
        logger.info(f"Initialized S3 adapter for region {self.region}")

    def is_initialized(self) -> bool:
        return self.session is not None

    def _client(self):
        if self.session is None:
            raise BackendError("S3 adapter is not initialized", backend=self.name)
        return self.session.client('s3', region_name=self.region, endpoint_url=self.endpoint_url)

    def _wrap(self, error: Exception, action: str, path: Optional[str]) -> BackendError:
        return BackendError(f"S3 {action} failed for {path}: {error}", backend=self.name, path=path)

    def _wrap_read(self, error: Exception, action: str, path: str) -> ReplicatorError:
        """Map an object read error; a 404 here means the object itself is missing"""
        if isinstance(error, ClientError) and _is_not_found(error):
            return ObjectNotFoundError(path, backend=self.name)
        return self._wrap(error, action, path)

    async def exists(self, path: str, scope: Optional[str] = None) -> bool:
        bucket = self._scope(scope)

        async def _head():
            async with self._client() as s3:
                try:
                    await s3.head_object(Bucket=bucket, Key=path)
                    return True
                except ClientError as e:
                    if _is_not_found(e):
                        return False
                    raise self._wrap(e, 'head', path) from e
                except BotoCoreError as e:
                    raise self._wrap(e, 'head', path) from e

        return await self._call(_head)

    async def list(self, prefix: str = '', scope: Optional[str] = None) -> List[ObjectEntry]:
        bucket = self._scope(scope)

        async def _list():
            entries = []
            async with self._client() as s3:
                try:
                    paginator = s3.get_paginator('list_objects_v2')
                    async for page in paginator.paginate(Bucket=bucket, Prefix=prefix or ''):
                        for obj in page.get('Contents', []):
                            last_modified = obj.get('LastModified')
                            entries.append(ObjectEntry(
                                name=obj['Key'],
                                size=obj.get('Size'),
                                last_modified=last_modified.isoformat() if last_modified else None,
                                etag=obj.get('ETag', '').strip('"') or None,
                            ))
                except (ClientError, BotoCoreError) as e:
                    raise self._wrap(e, 'list', prefix) from e
            return entries

        return await self._call(_list)

    async def fetch(self, path: str, scope: Optional[str] = None) -> bytes:
        bucket = self._scope(scope)

        async def _get():
            async with self._client() as s3:
                try:
                    response = await s3.get_object(Bucket=bucket, Key=path)
                    async with response['Body'] as stream:
                        return await stream.read()
                except (ClientError, BotoCoreError) as e:
                    raise self._wrap_read(e, 'get', path) from e

        return await self._call(_get)

    async def fetch_to_path(self, path: str, destination: PathLike, scope: Optional[str] = None) -> None:
        bucket = self._scope(scope)

        async def _download():
            async with self._client() as s3:
                try:
                    await s3.download_file(bucket, path, str(destination))
                except (ClientError, BotoCoreError) as e:
                    remove_partial_file(destination)
                    raise self._wrap_read(e, 'download', path) from e
                except OSError:
                    remove_partial_file(destination)
                    raise
                except Exception as e:
                    # Ranged part failures are re-raised as a bare Exception chained to the ClientError
                    remove_partial_file(destination)
                    cause = e.__cause__ if isinstance(e.__cause__, (ClientError, BotoCoreError)) else e
                    raise self._wrap_read(cause, 'download', path) from e
            logger.info(
                f"Downloaded s3://{bucket}/{path} to {destination}",
                extra={'operation': 'download', 'backend': self.name, 'path': path, 'scope': bucket}
            )

        await self._call(_download)

    async def store(
        self,
        source: PathLike,
        path: str,
        scope: Optional[str] = None,
        content_type: Optional[str] = None
    ) -> None:
        bucket = self._scope(scope)
        extra_args = {'ContentType': content_type or guess_content_type(source)}

        async def _upload():
            async with self._client() as s3:
                try:
                    await s3.upload_file(str(source), bucket, path, ExtraArgs=extra_args)
                except (ClientError, BotoCoreError) as e:
                    raise self._wrap(e, 'upload', path) from e
            logger.info(
                f"Uploaded {source} to s3://{bucket}/{path}",
                extra={'operation': 'upload', 'backend': self.name, 'path': path, 'scope': bucket}
            )

        if not Path(source).is_file():
            raise FileNotFoundError(f"Local source not found: {source}")
        await self._call(_upload)

    async def delete_many(self, paths: Iterable[str], scope: Optional[str] = None) -> None:
        bucket = self._scope(scope)
        keys = list(paths)
        if not keys:
            return

        async def _delete():
            async with self._client() as s3:
                for start in range(0, len(keys), DELETE_BATCH_SIZE):
                    batch = keys[start:start + DELETE_BATCH_SIZE]
                    try:
                        response = await s3.delete_objects(
                            Bucket=bucket,
                            Delete={'Objects': [{'Key': key} for key in batch], 'Quiet': True}
                        )
                    except (ClientError, BotoCoreError) as e:
                        raise self._wrap(e, 'delete', batch[0]) from e
                    errors = response.get('Errors', [])
                    if errors:
                        first = errors[0]
                        raise BackendError(
                            f"S3 delete failed for {len(errors)} object(s), "
                            f"first {first.get('Key')}: {first.get('Code')} {first.get('Message')}",
                            backend=self.name,
                            path=first.get('Key'),
                        )
            logger.info(
                f"Deleted {len(keys)} object(s) from s3://{bucket}",
                extra={'operation': 'delete', 'backend': self.name, 'scope': bucket}
            )

        await self._call(_delete)
