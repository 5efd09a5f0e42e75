from typing import Optional, Dict, Any
from dataclasses import dataclass, asdict
from enum import Enum
import json


class CleanupStatus(Enum):
    DELETED = "deleted"
    NOT_FOUND = "not_found"
    SKIPPED = "skipped"
    REJECTED = "rejected"
    DECODE_ERROR = "decode_error"
    SHAPE_ERROR = "shape_error"
    FILESYSTEM_ERROR = "filesystem_error"


# outcomes that count as success for the caller
OK_STATUSES = {CleanupStatus.DELETED, CleanupStatus.NOT_FOUND, CleanupStatus.SKIPPED}


@dataclass
class NotificationRecord:
    bucket_name: str
    object_key: str

    @classmethod
    def from_s3_record(cls, record: Dict[str, Any]):
        """
        Build a record from one entry of an S3 event's Records list.
        Raises KeyError/TypeError when the payload is not shaped like one.
        """
        s3 = record["s3"]
        bucket_name = s3["bucket"]["name"]
        object_key = s3["object"]["key"]
        if not isinstance(object_key, str):
            raise TypeError(f"object key must be a string, got {type(object_key).__name__}")
        return cls(bucket_name=bucket_name, object_key=object_key)


@dataclass
class CleanupResult:
    status: CleanupStatus
    message: str
    path: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status in OK_STATUSES

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["status"] = self.status.value
        return d

    def __str__(self) -> str:
        return json.dumps(self.to_dict(), indent=2)
