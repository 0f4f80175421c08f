"""Redis-backed store for workspace request records."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import List, Optional

from redis import Redis
from redis.exceptions import RedisError, WatchError

from ..errors import (
    ConflictError,
    PersistenceError,
    RecordDecodeError,
    RecordExistsError,
    RecordNotFoundError,
)
from ..orchestration.codec import decode_record, encode_record
from ..orchestration.models import WorkspaceRequest

LOGGER = logging.getLogger(__name__)


class WorkspaceRequestStore:
    """Persist workspace requests in Redis with optimistic concurrency.

    Every write bumps ``metadata.resource_version``. Status updates are
    compare-and-swap: they succeed only if the stored version still equals the
    version of the request being written.
    """

    RECORD_KEY_TEMPLATE = "{prefix}:request:{name}"
    INDEX_KEY_TEMPLATE = "{prefix}:requests"

    def __init__(self, redis_client: Redis, key_prefix: str = "workspace-operator") -> None:
        self._redis = redis_client
        self._prefix = key_prefix

    def _record_key(self, name: str) -> str:
        return self.RECORD_KEY_TEMPLATE.format(prefix=self._prefix, name=name)

    def _index_key(self) -> str:
        return self.INDEX_KEY_TEMPLATE.format(prefix=self._prefix)

    def create(self, request: WorkspaceRequest) -> WorkspaceRequest:
        """Store a new request at version 1 with an empty status."""

        metadata = request.metadata.model_copy(
            update={"resource_version": 1, "created_at": datetime.now(timezone.utc)}
        )
        stored = WorkspaceRequest(metadata=metadata, spec=request.spec)
        LOGGER.debug("Creating workspace request", extra={"request": request.name})
        try:
            created = self._redis.set(self._record_key(request.name), encode_record(stored), nx=True)
            if not created:
                raise RecordExistsError(request.name)
            self._redis.sadd(self._index_key(), request.name)
        except RedisError as exc:
            raise PersistenceError(f"failed to create workspace request {request.name!r}") from exc
        return stored

    def get(self, name: str) -> Optional[WorkspaceRequest]:
        try:
            raw = self._redis.get(self._record_key(name))
        except RedisError as exc:
            raise PersistenceError(f"failed to read workspace request {name!r}") from exc
        if not raw:
            return None
        return decode_record(raw)

    def require(self, name: str) -> WorkspaceRequest:
        request = self.get(name)
        if request is None:
            raise RecordNotFoundError(name)
        return request

    def list(self) -> List[WorkspaceRequest]:
        try:
            names = sorted(self._redis.smembers(self._index_key()))
        except RedisError as exc:
            raise PersistenceError("failed to list workspace requests") from exc
        requests = []
        for name in names:
            try:
                request = self.get(name)
            except RecordDecodeError:
                LOGGER.warning("Stored workspace request payload is invalid; skipping", extra={"request": name})
                continue
            if request is None:
                LOGGER.warning("Indexed workspace request is missing", extra={"request": name})
                continue
            requests.append(request)
        return requests

    def update_status(self, request: WorkspaceRequest) -> WorkspaceRequest:
        """Replace the stored status with ``request.status``.

        Raises ``ConflictError`` if the record changed since ``request`` was
        read and ``RecordNotFoundError`` if it was deleted meanwhile.
        """

        key = self._record_key(request.name)
        expected = request.metadata.resource_version
        try:
            with self._redis.pipeline() as pipe:
                pipe.watch(key)
                raw = pipe.get(key)
                if not raw:
                    raise RecordNotFoundError(request.name)
                current = decode_record(raw)
                if current.metadata.resource_version != expected:
                    raise ConflictError(request.name, expected, current.metadata.resource_version)
                stored = current.model_copy(update={"status": request.status}).with_version(expected + 1)
                pipe.multi()
                pipe.set(key, encode_record(stored))
                pipe.execute()
        except WatchError as exc:
            raise ConflictError(request.name, expected, None) from exc
        except RedisError as exc:
            raise PersistenceError(f"failed to update workspace request {request.name!r}") from exc
        LOGGER.debug(
            "Persisted workspace request status",
            extra={"request": request.name, "phase": stored.status.phase.value, "version": expected + 1},
        )
        return stored

    def delete(self, name: str) -> WorkspaceRequest:
        """Remove a request and return its last stored value."""

        request = self.require(name)
        try:
            self._redis.delete(self._record_key(name))
            self._redis.srem(self._index_key(), name)
        except RedisError as exc:
            raise PersistenceError(f"failed to delete workspace request {name!r}") from exc
        LOGGER.debug("Deleted workspace request", extra={"request": name})
        return request


__all__ = ["WorkspaceRequestStore"]
