"""
Object store access (S3 / MinIO) through boto3.

All calls to the bucket go through ObjectStore. Services never build a
boto3 client themselves.

Testability: pass a fake ``client`` to ObjectStore() in tests, or put a
prepared store in ``app.extensions["object_store"]`` before the first
request.

Usage:
    from casetrack.services.storage_service import get_object_store

    store = get_object_store()
    store.put(key, stream, content_type="application/pdf")
    for obj in store.list_objects(prefix):
        ...
"""

from __future__ import annotations

import logging

import boto3
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError
from flask import current_app

from casetrack.core.exceptions import StorageError

logger = logging.getLogger(__name__)

_DEFAULT_PRESIGN_EXPIRES = 3600
_LIST_PAGE_SIZE = 1000
_NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}


class ObjectStore:
    """Thin wrapper over an S3 client bound to one bucket.

    Every botocore failure is re-raised as StorageError so callers only
    deal with the platform exception hierarchy.
    """

    def __init__(self, client, bucket: str, presign_expires: int = _DEFAULT_PRESIGN_EXPIRES) -> None:
        self.client = client
        self.bucket = bucket
        self.presign_expires = presign_expires

    @classmethod
    def from_config(cls, cfg) -> ObjectStore:
        s3_kwargs = {}
        endpoint = cfg.get("S3_ENDPOINT")
        if endpoint:
            s3_kwargs["endpoint_url"] = endpoint
        region = cfg.get("S3_REGION")
        if region:
            s3_kwargs["region_name"] = region

        s3_config = Config(
            signature_version="s3v4",
            s3={"addressing_style": cfg.get("S3_ADDRESSING_STYLE", "path")},
        )
        client = boto3.client(
            "s3",
            aws_access_key_id=cfg.get("S3_ACCESS_KEY"),
            aws_secret_access_key=cfg.get("S3_SECRET_KEY"),
            config=s3_config,
            **s3_kwargs,
        )
        return cls(
            client,
            cfg["S3_BUCKET"],
            presign_expires=int(cfg.get("S3_PRESIGN_EXPIRES", _DEFAULT_PRESIGN_EXPIRES)),
        )

    # ── Writes ────────────────────────────────────────────────────────────────

    def put(self, key: str, body, content_type: str | None = None) -> None:
        extra = {"ContentType": content_type} if content_type else {}
        try:
            self.client.put_object(Bucket=self.bucket, Key=key, Body=body, **extra)
        except (BotoCoreError, ClientError) as exc:
            logger.error("S3 put failed bucket=%s key=%s: %s", self.bucket, key, exc)
            raise StorageError("upload", key, exc) from exc

    def delete(self, key: str) -> None:
        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError) as exc:
            logger.error("S3 delete failed bucket=%s key=%s: %s", self.bucket, key, exc)
            raise StorageError("delete", key, exc) from exc

    # ── Reads ─────────────────────────────────────────────────────────────────

    def exists(self, key: str) -> bool:
        try:
            self.client.head_object(Bucket=self.bucket, Key=key)
            return True
        except ClientError as exc:
            code = str(exc.response.get("Error", {}).get("Code", ""))
            if code in _NOT_FOUND_CODES:
                return False
            logger.error("S3 head failed bucket=%s key=%s: %s", self.bucket, key, exc)
            raise StorageError("head", key, exc) from exc
        except BotoCoreError as exc:
            logger.error("S3 head failed bucket=%s key=%s: %s", self.bucket, key, exc)
            raise StorageError("head", key, exc) from exc

    def list_objects(self, prefix: str) -> list[dict]:
        """Every object under *prefix* (all pages), excluding the folder marker itself.

        Returns a list of ``{"key", "size", "last_modified"}`` dicts.
        """
        objects: list[dict] = []
        kwargs = {"Bucket": self.bucket, "Prefix": prefix, "MaxKeys": _LIST_PAGE_SIZE}
        try:
            while True:
                page = self.client.list_objects_v2(**kwargs)
                for item in page.get("Contents", []) or []:
                    key = item.get("Key")
                    if not key or key == prefix:
                        continue
                    objects.append({
                        "key": key,
                        "size": item.get("Size", 0),
                        "last_modified": item.get("LastModified"),
                    })
                if not page.get("IsTruncated"):
                    break
                kwargs["ContinuationToken"] = page.get("NextContinuationToken")
        except (BotoCoreError, ClientError) as exc:
            logger.error("S3 list failed bucket=%s prefix=%s: %s", self.bucket, prefix, exc)
            raise StorageError("list", prefix, exc) from exc
        return objects

    def presign(self, key: str, expires: int | None = None) -> str:
        try:
            return self.client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=expires or self.presign_expires,
            )
        except (BotoCoreError, ClientError) as exc:
            logger.error("S3 presign failed bucket=%s key=%s: %s", self.bucket, key, exc)
            raise StorageError("presign", key, exc) from exc


def get_object_store() -> ObjectStore:
    """Return the app-wide ObjectStore, creating it on first use."""
    store = current_app.extensions.get("object_store")
    if store is None:
        store = ObjectStore.from_config(current_app.config)
        current_app.extensions["object_store"] = store
        logger.info("Object store initialised bucket=%s", store.bucket)
    return store
