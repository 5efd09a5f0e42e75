# src/lambdas/efs_cleanup/app.py
# Removes the EFS copy of a .gz artifact once S3 reports the object created.
import os
import logging
from typing import Any, Dict, Optional, Union

from src.models.cleanup import CleanupResult, CleanupStatus, NotificationRecord
from .common import (
    env, mount_root, with_trailing_slash, decode_key, resolve_path, is_within, file_extension, TARGET_EXTENSION,
)

logger = logging.getLogger()
logger.setLevel(env("LOG_LEVEL", "INFO").upper())

# fixed for the life of the container
MOUNT_ROOT = mount_root()


def _first_record(event: Dict[str, Any]) -> Union[NotificationRecord, CleanupResult]:
    try:
        records = event["Records"]
        record = NotificationRecord.from_s3_record(records[0])
    except (KeyError, IndexError, TypeError) as e:
        return CleanupResult(CleanupStatus.SHAPE_ERROR, "event is not an S3 notification", error=repr(e))

    if len(records) > 1:
        # batches are not iterated, only the first record counts
        logger.warning(f"Ignoring {len(records) - 1} additional record(s) in event batch")
    return record


def _decode(record: NotificationRecord) -> Union[str, CleanupResult]:
    try:
        return decode_key(record.object_key)
    except ValueError as e:
        return CleanupResult(CleanupStatus.DECODE_ERROR, f"could not decode key {record.object_key!r}", error=str(e))


def _not_found(file_path: str) -> CleanupResult:
    logger.info(f"File {file_path} does not exist.")
    return CleanupResult(CleanupStatus.NOT_FOUND, "does not exist", path=file_path)


def _check_exists(file_path: str) -> Optional[CleanupResult]:
    """None when the file is there, otherwise the outcome to report."""
    try:
        os.stat(file_path)
    except FileNotFoundError:
        return _not_found(file_path)
    except (OSError, ValueError) as e:
        return CleanupResult(CleanupStatus.FILESYSTEM_ERROR, f"could not check {file_path}", path=file_path, error=str(e))
    return None


def delete_file(file_path: str) -> CleanupResult:
    """
    Idempotent delete: a missing file is a success, including the case where
    something else removed it between the existence check and the unlink.
    """
    missing = _check_exists(file_path)
    if missing is not None:
        return missing

    try:
        os.remove(file_path)
    except FileNotFoundError:
        return _not_found(file_path)
    except (OSError, ValueError) as e:
        return CleanupResult(CleanupStatus.FILESYSTEM_ERROR, f"could not delete {file_path}", path=file_path, error=str(e))

    logger.info(f"File {file_path} deleted successfully.")
    return CleanupResult(CleanupStatus.DELETED, "deleted successfully", path=file_path)


def cleanup_key(decoded_key: str, root: Optional[str] = None, dry_run: bool = False) -> CleanupResult:
    """Resolve an already-decoded key under the mount root and delete it if it is a .gz."""
    root = with_trailing_slash(MOUNT_ROOT if root is None else root)
    file_path = resolve_path(root, decoded_key)

    if not is_within(file_path, root):
        return CleanupResult(CleanupStatus.REJECTED, f"path escapes mount root {root}", path=file_path)

    if file_extension(file_path) != TARGET_EXTENSION:
        logger.info(f"File does not have a .gz extension. {file_path}")
        return CleanupResult(CleanupStatus.SKIPPED, "does not have a .gz extension", path=file_path)

    if dry_run:
        missing = _check_exists(file_path)
        if missing is not None:
            return missing
        logger.info(f"Dry run, would delete {file_path}")
        return CleanupResult(CleanupStatus.SKIPPED, "dry run", path=file_path)

    return delete_file(file_path)


def process_event(event: Dict[str, Any], root: Optional[str] = None) -> CleanupResult:
    record = _first_record(event)
    if isinstance(record, CleanupResult):
        return record

    decoded = _decode(record)
    if isinstance(decoded, CleanupResult):
        return decoded

    return cleanup_key(decoded, root=root)


def lambda_handler(event, context):
    """
    S3 ObjectCreated trigger. Never raises: every outcome ends up in the logs
    and the invocation always reports success to Lambda.
    """
    try:
        result = process_event(event)
    except Exception:
        logger.exception("Error: unexpected failure while cleaning up EFS artifact")
        return None

    if not result.ok:
        logger.error(f"Error: {result.status.value}: {result.message} (path={result.path}, error={result.error})")
    return None
