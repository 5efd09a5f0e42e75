import logging
from typing import Iterator, List, Optional

from botocore.exceptions import ClientError

from src.lambdas.efs_cleanup import aws_clients
from src.lambdas.efs_cleanup.app import cleanup_key
from src.models.cleanup import CleanupResult

logger = logging.getLogger(__name__)


class EFSSweeper:
    """
    Back-fills cleanups for objects whose S3 notification never reached the
    lambda. Only the bucket listing is read, never object bodies.
    """

    def __init__(self, bucket_name: str, mount_root: Optional[str] = None, s3_client=None):
        self.bucket_name = bucket_name
        self.mount_root = mount_root
        self._s3 = s3_client

    @property
    def s3(self):
        if self._s3 is None:
            self._s3 = aws_clients.s3()
        return self._s3

    def iter_keys(self, prefix: str = "") -> Iterator[str]:
        try:
            paginator = self.s3.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self.bucket_name, Prefix=prefix):
                for obj in page.get("Contents", []) or []:
                    yield obj["Key"]
        except ClientError as e:
            logger.error(f"AWS ClientError listing s3://{self.bucket_name}/{prefix}: {e}", exc_info=True)
            raise RuntimeError(f"Failed to list {prefix!r} in bucket {self.bucket_name}") from e

    def sweep(self, prefix: str = "", dry_run: bool = False) -> List[CleanupResult]:
        # listed keys are already plain text, no event decoding
        results = []
        for key in self.iter_keys(prefix):
            result = cleanup_key(key, root=self.mount_root, dry_run=dry_run)
            if not result.ok:
                logger.error(f"Cleanup failed for {key}: {result.message} ({result.error})")
            results.append(result)

        logger.info(f"Swept {len(results)} object(s) under s3://{self.bucket_name}/{prefix}")
        return results
