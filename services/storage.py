# services/storage.py
"""
Object storage for user photos (S3 API; works against R2, MinIO or AWS).

Provisional uploads live under temp/, paid ones under final/. Both
namespaces share one bucket.
"""

from __future__ import annotations
import logging
import threading
from dataclasses import dataclass
from typing import Any, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

log = logging.getLogger(__name__)

_NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}


@dataclass
class StoredObject:
    key: str
    body: bytes
    content_type: Optional[str]


class ObjectStorage:
    def __init__(self, bucket: str, client: Any = None, *, endpoint_url: str | None = None,
                 region: str | None = None, access_key_id: str | None = None,
                 secret_access_key: str | None = None,
                 connect_timeout: float = 5, read_timeout: float = 30) -> None:
        if not bucket:
            raise RuntimeError("STORAGE_BUCKET not set")
        self.bucket = bucket
        self._client = client
        self._client_lock = threading.Lock()
        self._client_kwargs = {
            "endpoint_url": endpoint_url or None,
            "region_name": region or None,
            "aws_access_key_id": access_key_id or None,
            "aws_secret_access_key": secret_access_key or None,
            "config": Config(connect_timeout=connect_timeout, read_timeout=read_timeout,
                             retries={"max_attempts": 2}),
        }

    @classmethod
    def from_config(cls, cfg) -> "ObjectStorage":
        return cls(
            cfg.get("STORAGE_BUCKET"),
            endpoint_url=cfg.get("STORAGE_ENDPOINT_URL"),
            region=cfg.get("STORAGE_REGION"),
            access_key_id=cfg.get("STORAGE_ACCESS_KEY_ID"),
            secret_access_key=cfg.get("STORAGE_SECRET_ACCESS_KEY"),
            connect_timeout=float(cfg.get("STORAGE_CONNECT_TIMEOUT", 5)),
            read_timeout=float(cfg.get("STORAGE_READ_TIMEOUT", 30)),
        )

    @property
    def client(self):
        # first use may happen inside the migration workers; boto3 sessions
        # are not thread-safe, so build once from a private session
        if self._client is None:
            with self._client_lock:
                if self._client is None:
                    session = boto3.session.Session()
                    self._client = session.client("s3", **self._client_kwargs)
        return self._client

    def get(self, key: str) -> Optional[StoredObject]:
        """Fetch an object; None when the key does not exist."""
        try:
            resp = self.client.get_object(Bucket=self.bucket, Key=key)
        except ClientError as exc:
            code = str(exc.response.get("Error", {}).get("Code", ""))
            if code in _NOT_FOUND_CODES:
                return None
            raise
        body = resp["Body"].read()
        return StoredObject(key=key, body=body, content_type=resp.get("ContentType"))

    def put(self, key: str, body: bytes, content_type: Optional[str] = None) -> None:
        kwargs = {"Bucket": self.bucket, "Key": key, "Body": body}
        if content_type:
            kwargs["ContentType"] = content_type
        self.client.put_object(**kwargs)

    def delete(self, key: str) -> None:
        self.client.delete_object(Bucket=self.bucket, Key=key)

