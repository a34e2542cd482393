"""Metadata service that exposes store operations to remote callers."""

from __future__ import annotations

import threading
import time
from typing import Any, Iterator, Optional

from apigate.store import Store

LIMIT = 32
"""Number of objects read from the store at a time when listing."""


class RPCCancelled(Exception):
    """Raised when a call's context was cancelled before it ran."""

    def __init__(self) -> None:
        super().__init__("rpc cancel")


class CallContext:
    """Cancellation state for one call, with an optional timeout in seconds."""

    def __init__(self, timeout: Optional[float] = None) -> None:
        self._event = threading.Event()
        self._deadline = None if timeout is None else time.monotonic() + timeout

    def cancel(self) -> None:
        """Cancel the call."""
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self._deadline is not None and time.monotonic() >= self._deadline


def _check(ctx: Optional[CallContext]) -> None:
    if ctx is not None and ctx.cancelled:
        raise RPCCancelled()


class MetaService:
    """Runs each metadata call against the store unless its context is cancelled."""

    def __init__(self, db: Store) -> None:
        self._db = db

    def put_cluster(self, ctx: Optional[CallContext], cluster: Any) -> int:
        _check(ctx)
        return self._db.put_cluster(cluster)

    def remove_cluster(self, ctx: Optional[CallContext], id: int) -> None:
        _check(ctx)
        self._db.remove_cluster(id)

    def get_cluster(self, ctx: Optional[CallContext], id: int) -> Any:
        _check(ctx)
        return self._db.get_cluster(id)

    def get_cluster_list(self, ctx: Optional[CallContext]) -> Iterator[Any]:
        _check(ctx)
        return iter(self._db.get_clusters(LIMIT))

    def put_server(self, ctx: Optional[CallContext], server: Any) -> int:
        _check(ctx)
        return self._db.put_server(server)

    def remove_server(self, ctx: Optional[CallContext], id: int) -> None:
        _check(ctx)
        self._db.remove_server(id)

    def get_server(self, ctx: Optional[CallContext], id: int) -> Any:
        _check(ctx)
        return self._db.get_server(id)

    def get_server_list(self, ctx: Optional[CallContext]) -> Iterator[Any]:
        _check(ctx)
        return iter(self._db.get_servers(LIMIT))

    def put_api(self, ctx: Optional[CallContext], api: Any) -> int:
        _check(ctx)
        return self._db.put_api(api)

    def remove_api(self, ctx: Optional[CallContext], id: int) -> None:
        _check(ctx)
        self._db.remove_api(id)

    def get_api(self, ctx: Optional[CallContext], id: int) -> Any:
        _check(ctx)
        return self._db.get_api(id)

    def get_api_list(self, ctx: Optional[CallContext]) -> Iterator[Any]:
        _check(ctx)
        return iter(self._db.get_apis(LIMIT))

    def put_routing(self, ctx: Optional[CallContext], routing: Any) -> int:
        _check(ctx)
        return self._db.put_routing(routing)

    def remove_routing(self, ctx: Optional[CallContext], id: int) -> None:
        _check(ctx)
        self._db.remove_routing(id)

    def get_routing(self, ctx: Optional[CallContext], id: int) -> Any:
        _check(ctx)
        return self._db.get_routing(id)

    def get_routing_list(self, ctx: Optional[CallContext]) -> Iterator[Any]:
        _check(ctx)
        return iter(self._db.get_routings(LIMIT))

    def add_bind(self, ctx: Optional[CallContext], cluster: int, server: int) -> None:
        _check(ctx)
        self._db.add_bind(cluster, server)

    def remove_bind(self, ctx: Optional[CallContext], cluster: int, server: int) -> None:
        _check(ctx)
        self._db.remove_bind(cluster, server)

    def remove_cluster_bind(self, ctx: Optional[CallContext], cluster: int) -> None:
        _check(ctx)
        self._db.remove_cluster_bind(cluster)

    def get_bind_servers(self, ctx: Optional[CallContext], cluster: int) -> list[int]:
        _check(ctx)
        return self._db.get_bind_servers(cluster)

    def batch(self, ctx: Optional[CallContext], req: Any) -> Any:
        _check(ctx)
        return self._db.batch(req)

    def put_plugin(self, ctx: Optional[CallContext], plugin: Any) -> int:
        _check(ctx)
        return self._db.put_plugin(plugin)

    def remove_plugin(self, ctx: Optional[CallContext], id: int) -> None:
        _check(ctx)
        self._db.remove_plugin(id)

    def get_plugin(self, ctx: Optional[CallContext], id: int) -> Any:
        _check(ctx)
        return self._db.get_plugin(id)

    def get_plugin_list(self, ctx: Optional[CallContext]) -> Iterator[Any]:
        _check(ctx)
        return iter(self._db.get_plugins(LIMIT))

    def apply_plugins(self, ctx: Optional[CallContext], applied: Any) -> None:
        _check(ctx)
        self._db.apply_plugins(applied)

    def get_applied_plugins(self, ctx: Optional[CallContext]) -> Any:
        _check(ctx)
        return self._db.get_applied_plugins()

    def clean(self, ctx: Optional[CallContext]) -> None:
        _check(ctx)
        self._db.clean()

    def set_id(self, ctx: Optional[CallContext], id: int) -> None:
        _check(ctx)
        self._db.set_id(id)


default_store: Optional[Store] = None
default_service: Optional[MetaService] = None


def init_service(db: Store) -> MetaService:
    """Install ``db`` as the process-wide store and return the service over it."""
    global default_store, default_service
    default_store = db
    default_service = MetaService(db)
    return default_service