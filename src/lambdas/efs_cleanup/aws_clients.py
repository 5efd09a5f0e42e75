"""
boto3 clients for the cleanup tooling.

The lambda itself never talks to S3, it only reads the event payload. The
sweeper is the one caller here, and it builds its client on first use so
importing the handler stays free of AWS config.
"""
import os
from typing import Optional

import boto3

def region() -> str:
    return os.environ.get("AWS_REGION") or os.environ.get("AWS_DEFAULT_REGION") or "us-east-1"

def s3(region_name: Optional[str] = None):
    # AWS_ENDPOINT_URL_S3 points the sweeper at LocalStack
    kwargs = {"region_name": region_name or region()}
    endpoint = os.environ.get("AWS_ENDPOINT_URL_S3")
    if endpoint:
        kwargs["endpoint_url"] = endpoint
    return boto3.client("s3", **kwargs)
