"""Storage interface for gateway metadata, with event types and key helpers."""

from __future__ import annotations

import abc
import threading
from dataclasses import dataclass, field
from enum import IntEnum
from queue import Queue
from typing import Any, Callable, Iterator, Optional
from urllib.parse import urlsplit

from apigate.addr import get_addr_format

TICKER = 3.0
"""Seconds between proxy registration refreshes."""

TTL = 5
"""Seconds a proxy registration lives without a refresh."""


class EvtType(IntEnum):
    """Kind of change reported by a store watch."""

    NEW = 0
    UPDATE = 1
    DELETE = 2


class EvtSrc(IntEnum):
    """Kind of object a store event refers to."""

    CLUSTER = 0
    SERVER = 1
    BIND = 2
    API = 3
    ROUTING = 4
    PROXY = 5
    PLUGIN = 6
    APPLY_PLUGIN = 7


@dataclass
class Evt:
    """A change observed in the store."""

    src: EvtSrc
    type: EvtType
    key: str = ""
    value: Any = None


@dataclass(frozen=True)
class BasicAuth:
    """Credentials used to connect to a store."""

    user_name: str = ""
    password: str = field(default="", repr=False)


class UnsupportedStoreError(ValueError):
    """Raised when a registry address names a scheme no store supports."""


StoreFactory = Callable[[str, str, BasicAuth], "Store"]

_schemas_lock = threading.Lock()
_schemas: dict[str, StoreFactory] = {}


def register_schema(schema: str, factory: StoreFactory) -> None:
    """Make ``factory(host, prefix, auth)`` the store for ``schema`` addresses."""
    with _schemas_lock:
        _schemas[schema.lower()] = factory


def get_store_from(registry_addr: str, prefix: str, user_name: str = "", password: str = "") -> "Store":
    """Return the store that serves ``registry_addr``, e.g. ``etcd://host:2379,host2:2379``."""
    try:
        parts = urlsplit(registry_addr)
    except ValueError as exc:
        raise ValueError(f"parse registry addr failed, errors:{exc}") from exc

    schema = parts.scheme.lower()
    with _schemas_lock:
        factory = _schemas.get(schema)
    if factory is None:
        raise UnsupportedStoreError(f"not support: {registry_addr}")

    host = parts.netloc.rpartition("@")[2]
    return factory(host, prefix, BasicAuth(user_name=user_name, password=password))


def get_key(prefix: str, id: int) -> str:
    """Return the key for ``id`` under ``prefix``; keys sort by id."""
    return f"{prefix}/{id:020d}"


def get_addr_key(prefix: str, addr: str) -> str:
    """Return the key for a network address under ``prefix``; keys sort by address."""
    return f"{prefix}/{get_addr_format(addr)}"


class Store(abc.ABC):
    """Persistent store for clusters, servers, binds, APIs, routings and plugins.

    Listing methods yield objects in id order, reading ``limit`` at a time.
    Lookups of missing objects raise an error.
    """

    @abc.abstractmethod
    def raw(self) -> Any:
        """Return the underlying client."""

    @abc.abstractmethod
    def add_bind(self, cluster_id: int, server_id: int) -> None:
        """Bind a server to a cluster."""

    @abc.abstractmethod
    def remove_bind(self, cluster_id: int, server_id: int) -> None:
        """Remove the bind of a server to a cluster."""

    @abc.abstractmethod
    def remove_cluster_bind(self, cluster_id: int) -> None:
        """Remove every server bound to a cluster."""

    @abc.abstractmethod
    def get_bind_servers(self, cluster_id: int) -> list[int]:
        """Return the ids of the servers bound to a cluster."""

    @abc.abstractmethod
    def put_cluster(self, cluster: Any) -> int:
        """Add or update a cluster and return its id."""

    @abc.abstractmethod
    def remove_cluster(self, id: int) -> None:
        """Remove a cluster and its binds."""

    @abc.abstractmethod
    def get_clusters(self, limit: int) -> Iterator[Any]:
        """Yield every cluster."""

    @abc.abstractmethod
    def get_cluster(self, id: int) -> Any:
        """Return a cluster."""

    @abc.abstractmethod
    def put_server(self, server: Any) -> int:
        """Add or update a server and return its id."""

    @abc.abstractmethod
    def remove_server(self, id: int) -> None:
        """Remove a server."""

    @abc.abstractmethod
    def get_servers(self, limit: int) -> Iterator[Any]:
        """Yield every server."""

    @abc.abstractmethod
    def get_server(self, id: int) -> Any:
        """Return a server."""

    @abc.abstractmethod
    def put_api(self, api: Any) -> int:
        """Add or update an API and return its id."""

    @abc.abstractmethod
    def remove_api(self, id: int) -> None:
        """Remove an API."""

    @abc.abstractmethod
    def get_apis(self, limit: int) -> Iterator[Any]:
        """Yield every API."""

    @abc.abstractmethod
    def get_api(self, id: int) -> Any:
        """Return an API."""

    @abc.abstractmethod
    def put_routing(self, routing: Any) -> int:
        """Add or update a routing and return its id."""

    @abc.abstractmethod
    def remove_routing(self, id: int) -> None:
        """Remove a routing."""

    @abc.abstractmethod
    def get_routings(self, limit: int) -> Iterator[Any]:
        """Yield every routing."""

    @abc.abstractmethod
    def get_routing(self, id: int) -> Any:
        """Return a routing."""

    @abc.abstractmethod
    def put_plugin(self, plugin: Any) -> int:
        """Add or update a plugin and return its id."""

    @abc.abstractmethod
    def remove_plugin(self, id: int) -> None:
        """Remove a plugin that is not applied."""

    @abc.abstractmethod
    def get_plugins(self, limit: int) -> Iterator[Any]:
        """Yield every plugin."""

    @abc.abstractmethod
    def get_plugin(self, id: int) -> Any:
        """Return a plugin."""

    @abc.abstractmethod
    def apply_plugins(self, applied: Any) -> None:
        """Replace the set of applied plugins."""

    @abc.abstractmethod
    def get_applied_plugins(self) -> Any:
        """Return the set of applied plugins."""

    @abc.abstractmethod
    def registry_proxy(self, proxy: Any, ttl: int) -> None:
        """Register a proxy that expires after ``ttl`` seconds without refresh."""

    @abc.abstractmethod
    def get_proxies(self, limit: int) -> Iterator[Any]:
        """Yield every registered proxy."""

    @abc.abstractmethod
    def watch(self, events: "Queue[Evt]", stop: threading.Event) -> None:
        """Put an :class:`Evt` on ``events`` for every change until ``stop`` is set."""

    @abc.abstractmethod
    def clean(self) -> None:
        """Delete everything in the store."""

    @abc.abstractmethod
    def set_id(self, id: int) -> None:
        """Set the id allocator's current value."""

    @abc.abstractmethod
    def backup_to(self, to: str) -> None:
        """Copy every object to the gateway at ``to``."""

    @abc.abstractmethod
    def batch(self, batch: Any) -> Any:
        """Apply a batch of updates and return the results."""

    @abc.abstractmethod
    def system(self) -> Any:
        """Return object counts and other system information."""


def _optional(value: Optional[str]) -> str:
    return value or ""