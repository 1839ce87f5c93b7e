from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Dict, List, Optional

import boto3
from boto3.exceptions import Boto3Error
from botocore.exceptions import BotoCoreError, ClientError

from ..manifest import ManifestEntry
from ..package import Package, parse_timestamp
from .base import (
    RemovalError,
    TransferError,
    TransferStrategy,
    log_removal_started,
    log_transfer_started,
    storage_name_for,
)

LOG = logging.getLogger(__name__)

DEFAULT_REGION = "us-east-1"
DELETE_BATCH_SIZE = 1000

S3_ERRORS = (ClientError, BotoCoreError, Boto3Error)


class S3Storage:
    """Stores packages as objects under ``<path>/<trigger>/<timestamp>/`` in an S3 bucket."""

    kind = "S3"

    def __init__(
        self,
        bucket: str,
        path: str = "",
        region: str = DEFAULT_REGION,
        access_key: Optional[str] = None,
        secret_key: Optional[str] = None,
        endpoint_url: Optional[str] = None,
        storage_id: Optional[str] = None,
        client: Optional[Any] = None,
    ) -> None:
        self.bucket = bucket
        self.path = path.strip("/")
        self.region = region
        self.storage_id = storage_id
        self.storage_name = storage_name_for(self.kind, storage_id)
        self.client = client or boto3.client(
            "s3",
            aws_access_key_id=access_key,
            aws_secret_access_key=secret_key,
            region_name=region,
            endpoint_url=endpoint_url,
        )

    def remote_address_for(self, package: Package) -> str:
        return f"s3://{self.bucket}/{self._prefix_for(package)}"

    def transfer(self, package: Package, strategy: TransferStrategy) -> None:
        destination = self.remote_address_for(package)
        prefix = self._prefix_for(package)
        try:
            self._ensure_bucket()
        except S3_ERRORS as exc:
            raise TransferError(
                self.storage_name, package, destination, f"Could not access bucket '{self.bucket}': {exc}"
            ) from exc

        for chunk in package.chunks:
            log_transfer_started(LOG, self.storage_name, chunk)
            key = f"{prefix}/{chunk.destination_filename}"
            try:
                self.client.upload_file(str(chunk.source_path), self.bucket, key)
                if strategy is TransferStrategy.MOVE:
                    chunk.source_path.unlink()
            except S3_ERRORS + (OSError,) as exc:
                raise TransferError(
                    self.storage_name,
                    package,
                    destination,
                    f"Failed to upload '{chunk.source_name}': {exc}",
                ) from exc

    def remove(self, package: Package) -> None:
        destination = self.remote_address_for(package)
        log_removal_started(LOG, self.storage_name, package.chunks)

        try:
            keys = self._keys_under(f"{self._prefix_for(package)}/")
            if not keys:
                LOG.debug("%s destination %s already absent", self.storage_name, destination)
                return
            failed = self._delete_keys(keys)
        except S3_ERRORS as exc:
            raise RemovalError(self.storage_name, package, destination, f"Failed to remove backup: {exc}") from exc

        if failed:
            raise RemovalError(
                self.storage_name,
                package,
                destination,
                "Failed to remove object(s): " + ", ".join(failed),
            )

    def list_entries(self, trigger: str) -> List[ManifestEntry]:
        base = "/".join(part for part in (self.path, trigger) if part) + "/"
        grouped: Dict[str, List[str]] = defaultdict(list)
        for key in self._keys_under(base):
            timestamp, _, filename = key[len(base):].partition("/")
            if not filename or "/" in filename:
                continue
            grouped[timestamp].append(filename)

        entries: List[ManifestEntry] = []
        for timestamp, filenames in grouped.items():
            time = parse_timestamp(timestamp)
            if time is None:
                LOG.debug("Skipping non-backup prefix %s%s/", base, timestamp)
                continue
            entries.append(
                ManifestEntry(
                    trigger=trigger,
                    time=time,
                    location=f"s3://{self.bucket}/{base}{timestamp}",
                    filenames=tuple(sorted(filenames)),
                )
            )

        entries.sort(key=lambda entry: entry.time)
        return entries

    def _prefix_for(self, package: Package) -> str:
        return "/".join(part for part in (self.path, package.trigger, package.timestamp) if part)

    def _ensure_bucket(self) -> None:
        try:
            self.client.head_bucket(Bucket=self.bucket)
            return
        except ClientError as exc:
            error_code = exc.response.get("Error", {}).get("Code", "Unknown")
            if error_code not in ("404", "NoSuchBucket", "NotFound"):
                raise

        LOG.info("%s creating missing bucket %s", self.storage_name, self.bucket)
        if self.region == DEFAULT_REGION:
            self.client.create_bucket(Bucket=self.bucket)
        else:
            self.client.create_bucket(
                Bucket=self.bucket,
                CreateBucketConfiguration={"LocationConstraint": self.region},
            )

    def _keys_under(self, prefix: str) -> List[str]:
        keys: List[str] = []
        paginator = self.client.get_paginator("list_objects_v2")
        for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
            for obj in page.get("Contents", []):
                keys.append(obj["Key"])
        return keys

    def _delete_keys(self, keys: List[str]) -> List[str]:
        failed: List[str] = []
        for start in range(0, len(keys), DELETE_BATCH_SIZE):
            batch = keys[start:start + DELETE_BATCH_SIZE]
            response = self.client.delete_objects(
                Bucket=self.bucket,
                Delete={"Objects": [{"Key": key} for key in batch], "Quiet": True},
            )
            failed.extend(error["Key"] for error in response.get("Errors", []))
        return failed
