"""HTTP management API over a metadata store."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Iterable, Mapping, NamedTuple, Optional, Union

from apigate.meta_service import LIMIT
from apigate.store import Store

logger = logging.getLogger(__name__)

API_VERSION = "/v1"

_UINT64_MAX = 2**64 - 1
_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1
_UNSIGNED = re.compile(r"^\+?[0-9]+$")
_SIGNED = re.compile(r"^[+-]?[0-9]+$")


class ParamError(ValueError):
    """Raised when a request's path, query or body cannot be parsed."""


@dataclass
class JSONResult:
    """Result of a management call: ``code`` is 0 on success, -1 on failure."""

    code: int = 0
    data: Any = None

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "data": self.data}


@dataclass
class LimitQuery:
    """Paging of a listing: at most ``limit`` objects with an id above ``after_id``."""

    limit: int = LIMIT
    after_id: int = 0


def _first(value: Any) -> str:
    if isinstance(value, (list, tuple)):
        value = value[0] if value else ""
    return "" if value is None else str(value)


def _parse_uint64(value: str) -> int:
    if not _UNSIGNED.match(value):
        raise ParamError(f"invalid unsigned integer: {value!r}")
    number = int(value)
    if number > _UINT64_MAX:
        raise ParamError(f"value out of range: {value!r}")
    return number


def _parse_int64(value: str) -> int:
    if not _SIGNED.match(value):
        raise ParamError(f"invalid integer: {value!r}")
    number = int(value)
    if not _INT64_MIN <= number <= _INT64_MAX:
        raise ParamError(f"value out of range: {value!r}")
    return number


def parse_id_param(params: Optional[Mapping[str, str]]) -> int:
    """Return the ``id`` path parameter as an unsigned integer."""
    value = _first((params or {}).get("id", ""))
    if not value:
        raise ParamError("missing id path value")
    return _parse_uint64(value)


def parse_limit_query(query: Optional[Mapping[str, Any]]) -> LimitQuery:
    """Return the paging given by the ``limit`` and ``after`` query parameters."""
    query = query or {}
    result = LimitQuery()
    limit = _first(query.get("limit", ""))
    if limit:
        result.limit = _parse_int64(limit)
    after = _first(query.get("after", ""))
    if after:
        result.after_id = _parse_uint64(after)
    return result


def _object_id(value: Any) -> int:
    if isinstance(value, Mapping):
        return int(value.get("id", value.get("ID", 0)) or 0)
    return int(getattr(value, "id", getattr(value, "ID", 0)) or 0)


def _json_body(body: Any) -> dict[str, Any]:
    if isinstance(body, Mapping):
        return dict(body)
    if isinstance(body, (bytes, bytearray)):
        body = bytes(body).decode("utf-8", errors="replace")
    if not isinstance(body, str) or not body.strip():
        raise ParamError("missing json body")
    try:
        value = json.loads(body)
    except json.JSONDecodeError as exc:
        raise ParamError(f"invalid json body: {exc}") from exc
    if not isinstance(value, dict):
        raise ParamError("json body must be an object")
    return value


def _uint_field(body: Mapping[str, Any], name: str) -> int:
    value = body.get(name, 0)
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= _UINT64_MAX:
        raise ParamError(f"field {name} must be an unsigned integer")
    return value


class _Request(NamedTuple):
    params: dict[str, str]
    query: Optional[Mapping[str, Any]]
    body: Any


@dataclass(frozen=True)
class _Route:
    method: str
    path: str
    # None when the route takes no input.
    param: Optional[Callable[[_Request], Any]]
    handler: Callable[[Any], Any]
    name: str


def _match(pattern: str, path: str) -> Optional[dict[str, str]]:
    want = pattern.split("/")
    got = path.split("/")
    if len(want) != len(got):
        return None
    params: dict[str, str] = {}
    for expected, actual in zip(want, got):
        if expected.startswith(":"):
            if not actual:
                return None
            params[expected[1:]] = actual
        elif expected != actual:
            return None
    return params


def _by_id(req: _Request) -> int:
    return parse_id_param(req.params)


def _by_limit(req: _Request) -> LimitQuery:
    return parse_limit_query(req.query)


def _by_body(req: _Request) -> dict[str, Any]:
    return _json_body(req.body)


def _by_bind(req: _Request) -> tuple[int, int]:
    body = _json_body(req.body)
    return _uint_field(body, "clusterID"), _uint_field(body, "serverID")


def _by_backup(req: _Request) -> str:
    to_addr = _json_body(req.body).get("toAddr", "")
    if not isinstance(to_addr, str):
        raise ParamError("field toAddr must be a string")
    return to_addr


class RestAPI:
    """Routes management requests to a store and serves the UI files."""

    def __init__(self, store: Store, ui: str = "", ui_prefix: str = "/ui") -> None:
        self.store = store
        self.ui = ui
        self.ui_prefix = ui_prefix
        self._routes = self._build_routes()
        # Literal paths win over paths with parameters.
        self._ordered = [r for r in self._routes if ":" not in r.path] + [
            r for r in self._routes if ":" in r.path
        ]

    def routes(self) -> list[tuple[str, str]]:
        """Return every (method, path pattern) this API answers."""
        return [(route.method, route.path) for route in self._routes]

    def dispatch(
        self,
        method: str,
        path: str,
        query: Optional[Mapping[str, Any]] = None,
        body: Any = None,
    ) -> Union[JSONResult, bytes]:
        """Handle one request.

        Returns a :class:`JSONResult` for API paths and the file content for
        UI paths. Raises :class:`ParamError` for unparsable input and
        ``LookupError`` when nothing answers the path.
        """
        method = method.upper()
        for route in self._ordered:
            if route.method != method:
                continue
            params = _match(route.path, path)
            if params is None:
                continue
            value = None if route.param is None else route.param(_Request(params, query, body))
            return self._invoke(route, value)

        if method == "GET" and self._under_ui(path):
            return self._static(path)
        raise LookupError(f"no route for {method} {path}")

    def _invoke(self, route: _Route, value: Any) -> JSONResult:
        try:
            data = route.handler(value)
        except Exception as exc:
            logger.error("%s: req %r, errors:%s", route.name, value, exc)
            return JSONResult(code=-1, data=str(exc))
        return JSONResult(data=data)

    def _list(self, items: Iterable[Any], query: LimitQuery) -> list[Any]:
        values: list[Any] = []
        for item in items:
            if len(values) < query.limit and _object_id(item) > query.after_id:
                values.append(item)
        return values

    def _under_ui(self, path: str) -> bool:
        prefix = self.ui_prefix.rstrip("/")
        return not prefix or path == prefix or path.startswith(prefix + "/")

    def _static(self, path: str) -> bytes:
        root = Path(self.ui or ".").resolve()
        relative = path[len(self.ui_prefix.rstrip("/")):].lstrip("/")
        target = (root / relative).resolve()
        if target != root and root not in target.parents:
            raise LookupError(f"no file for {path}")
        if target.is_dir():
            target = target / "index.html"
        if not target.is_file():
            raise LookupError(f"no file for {path}")
        return target.read_bytes()

    def _build_routes(self) -> list[_Route]:
        s = self.store
        routes: list[_Route] = []

        def add(method: str, path: str, param: Optional[Callable[[_Request], Any]],
                handler: Callable[[Any], Any], name: str) -> None:
            routes.append(_Route(method, API_VERSION + path, param, handler, name))

        def bind(action: Callable[[int, int], None]) -> Callable[[tuple[int, int]], None]:
            return lambda ids: action(*ids)

        add("GET", "/clusters/:id", _by_id, s.get_cluster, "api-cluster-get")
        add("GET", "/clusters/:id/binds", _by_id, s.get_bind_servers, "api-cluster-binds-get")
        add("DELETE", "/clusters/:id", _by_id, s.remove_cluster, "api-cluster-delete")
        add("DELETE", "/clusters/:id/binds", _by_id, s.remove_cluster_bind, "api-cluster-binds-delete")
        add("PUT", "/clusters", _by_body, s.put_cluster, "api-cluster-put")
        add("GET", "/clusters", _by_limit,
            lambda q: self._list(s.get_clusters(LIMIT), q), "api-cluster-list-get")

        add("GET", "/servers/:id", _by_id, s.get_server, "api-server-get")
        add("DELETE", "/servers/:id", _by_id, s.remove_server, "api-server-delete")
        add("PUT", "/servers", _by_body, s.put_server, "api-server-put")
        add("GET", "/servers", _by_limit,
            lambda q: self._list(s.get_servers(LIMIT), q), "api-server-list-get")

        add("DELETE", "/binds", _by_bind, bind(s.remove_bind), "api-bind-delete")
        add("PUT", "/binds", _by_bind, bind(s.add_bind), "api-bind-put")

        add("GET", "/routings/:id", _by_id, s.get_routing, "api-routing-get")
        add("DELETE", "/routings/:id", _by_id, s.remove_routing, "api-routing-delete")
        add("PUT", "/routings", _by_body, s.put_routing, "api-routing-put")
        add("GET", "/routings", _by_limit,
            lambda q: self._list(s.get_routings(LIMIT), q), "api-routing-list-get")

        add("GET", "/apis/:id", _by_id, s.get_api, "api-api-get")
        add("DELETE", "/apis/:id", _by_id, s.remove_api, "api-api-delete")
        add("PUT", "/apis", _by_body, s.put_api, "api-api-put")
        add("GET", "/apis", _by_limit,
            lambda q: self._list(s.get_apis(LIMIT), q), "api-api-list-get")

        add("GET", "/plugins/:id", _by_id, s.get_plugin, "api-plugin-get")
        add("DELETE", "/plugins/:id", _by_id, s.remove_plugin, "api-plugin-delete")
        add("PUT", "/plugins", _by_body, s.put_plugin, "api-plugin-put")
        add("GET", "/plugins", _by_limit,
            lambda q: self._list(s.get_plugins(LIMIT), q), "api-plugin-list-get")
        add("PUT", "/plugins/apply", _by_body, s.apply_plugins, "api-plugin-put-applied")
        add("GET", "/plugins/apply", None,
            lambda _: s.get_applied_plugins(), "api-plugin-get-applied")

        add("GET", "/system", None, lambda _: s.system(), "api-system-get")
        add("POST", "/system/backup", _by_backup, s.backup_to, "api-system-backup")
        return routes