"""S3-backed object store.

S3 has no rename, so a move is copy + delete. The copy either lands or it
does not; a crash between the two steps leaves the record visible in both
stages, which readers tolerate because every relocation re-derives its key
from what the store returns.
"""

from __future__ import annotations

import logging
from typing import Any

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from app.domain.errors import RecordNotFoundError, StoreUnavailableError
from app.domain.paths import next_free_key, with_collision_suffix

logger = logging.getLogger("storage")

_NOT_FOUND_CODES = frozenset({"NoSuchKey", "404", "NotFound"})
_PRECONDITION_CODES = frozenset({"PreconditionFailed", "412"})
_MAX_WRITE_ATTEMPTS = 1000


def _error_code(err: ClientError) -> str:
    return str(err.response.get("Error", {}).get("Code", ""))


class S3ObjectStore:
    def __init__(self, *, bucket: str, client: Any | None = None, key_prefix: str = "") -> None:
        if not bucket:
            raise ValueError("bucket is required for the s3 object store")
        self.bucket = bucket
        self.key_prefix = key_prefix.strip("/")
        self._s3 = client or boto3.client(
            "s3",
            config=BotoConfig(
                connect_timeout=5,
                read_timeout=30,
                retries={"max_attempts": 3, "mode": "standard"},
            ),
        )

    def _k(self, key: str) -> str:
        return f"{self.key_prefix}/{key}" if self.key_prefix else key

    def _strip(self, full_key: str) -> str:
        if self.key_prefix and full_key.startswith(f"{self.key_prefix}/"):
            return full_key[len(self.key_prefix) + 1 :]
        return full_key

    def _unavailable(self, operation: str, key: str, err: Exception) -> StoreUnavailableError:
        logger.error("s3 call failed", extra={"key": key, "error_code": "store_unavailable"})
        return StoreUnavailableError(f"s3 {operation} failed for {key}: {err}")

    def _exists(self, key: str) -> bool:
        try:
            self._s3.head_object(Bucket=self.bucket, Key=self._k(key))
            return True
        except ClientError as err:
            if _error_code(err) in _NOT_FOUND_CODES:
                return False
            raise self._unavailable("head", key, err) from err
        except BotoCoreError as err:
            raise self._unavailable("head", key, err) from err

    def write(self, *, key: str, payload: bytes) -> str:
        candidate = next_free_key(key, self._exists)
        for attempt in range(1, _MAX_WRITE_ATTEMPTS + 1):
            try:
                self._s3.put_object(Bucket=self.bucket, Key=self._k(candidate), Body=payload, IfNoneMatch="*")
                return candidate
            except ClientError as err:
                if _error_code(err) not in _PRECONDITION_CODES:
                    raise self._unavailable("put", candidate, err) from err
            except BotoCoreError as err:
                raise self._unavailable("put", candidate, err) from err
            # Lost a race for this name; take the next suffix.
            candidate = next_free_key(with_collision_suffix(key, attempt), self._exists)
        raise StoreUnavailableError(f"no free key left for {key}")

    def rewrite(self, *, key: str, payload: bytes) -> None:
        if not self._exists(key):
            raise RecordNotFoundError(key)
        try:
            self._s3.put_object(Bucket=self.bucket, Key=self._k(key), Body=payload)
        except (ClientError, BotoCoreError) as err:
            raise self._unavailable("put", key, err) from err

    def list_by_prefix(self, *, prefix: str) -> list[str]:
        keys: list[str] = []
        request: dict[str, Any] = {"Bucket": self.bucket, "Prefix": self._k(prefix)}
        try:
            while True:
                response = self._s3.list_objects_v2(**request)
                keys.extend(self._strip(item["Key"]) for item in response.get("Contents", []))
                if not response.get("IsTruncated"):
                    break
                request["ContinuationToken"] = response["NextContinuationToken"]
        except (ClientError, BotoCoreError) as err:
            raise self._unavailable("list", prefix, err) from err
        return sorted(keys)

    def read(self, *, key: str) -> bytes:
        try:
            response = self._s3.get_object(Bucket=self.bucket, Key=self._k(key))
            return response["Body"].read()
        except ClientError as err:
            if _error_code(err) in _NOT_FOUND_CODES:
                raise RecordNotFoundError(key) from err
            raise self._unavailable("get", key, err) from err
        except BotoCoreError as err:
            raise self._unavailable("get", key, err) from err

    def copy(self, *, from_key: str, to_key: str) -> str:
        actual_key = next_free_key(to_key, self._exists)
        try:
            self._s3.copy_object(
                Bucket=self.bucket,
                Key=self._k(actual_key),
                CopySource={"Bucket": self.bucket, "Key": self._k(from_key)},
            )
        except ClientError as err:
            if _error_code(err) in _NOT_FOUND_CODES:
                raise RecordNotFoundError(from_key) from err
            raise self._unavailable("copy", from_key, err) from err
        except BotoCoreError as err:
            raise self._unavailable("copy", from_key, err) from err
        return actual_key

    def move(self, *, from_key: str, to_key: str) -> str:
        if from_key == to_key:
            if not self._exists(from_key):
                raise RecordNotFoundError(from_key)
            return from_key
        actual_key = self.copy(from_key=from_key, to_key=to_key)
        self.delete(key=from_key)
        return actual_key

    def delete(self, *, key: str) -> None:
        try:
            self._s3.delete_object(Bucket=self.bucket, Key=self._k(key))
        except (ClientError, BotoCoreError) as err:
            raise self._unavailable("delete", key, err) from err
