import json

import pytest

from apigate.rest import (
    JSONResult,
    LimitQuery,
    ParamError,
    RestAPI,
    parse_id_param,
    parse_limit_query,
)
from apigate.store import Store


class MemoryStore(Store):
    def __init__(self):
        self.next_id = 100
        self.objects = {k: {} for k in ("cluster", "server", "api", "routing", "plugin")}
        self.binds = {}
        self.applied = {"appliedIDs": []}
        self.backups = []

    def _put(self, kind, value):
        value = dict(value)
        if not value.get("id"):
            self.next_id += 1
            value["id"] = self.next_id
        self.objects[kind][value["id"]] = value
        return value["id"]

    def _get(self, kind, id):
        try:
            return self.objects[kind][id]
        except KeyError:
            raise ValueError(f"<{id}> not found") from None

    def _iter(self, kind):
        for key in sorted(self.objects[kind]):
            yield self.objects[kind][key]

    def raw(self):
        return self.objects

    def add_bind(self, cluster_id, server_id):
        self.binds.setdefault(cluster_id, []).append(server_id)

    def remove_bind(self, cluster_id, server_id):
        self.binds.get(cluster_id, []).remove(server_id)

    def remove_cluster_bind(self, cluster_id):
        self.binds.pop(cluster_id, None)

    def get_bind_servers(self, cluster_id):
        return list(self.binds.get(cluster_id, []))

    def put_cluster(self, cluster):
        return self._put("cluster", cluster)

    def remove_cluster(self, id):
        self.objects["cluster"].pop(id, None)

    def get_clusters(self, limit):
        return self._iter("cluster")

    def get_cluster(self, id):
        return self._get("cluster", id)

    def put_server(self, server):
        return self._put("server", server)

    def remove_server(self, id):
        self.objects["server"].pop(id, None)

    def get_servers(self, limit):
        return self._iter("server")

    def get_server(self, id):
        return self._get("server", id)

    def put_api(self, api):
        return self._put("api", api)

    def remove_api(self, id):
        self.objects["api"].pop(id, None)

    def get_apis(self, limit):
        return self._iter("api")

    def get_api(self, id):
        return self._get("api", id)

    def put_routing(self, routing):
        return self._put("routing", routing)

    def remove_routing(self, id):
        self.objects["routing"].pop(id, None)

    def get_routings(self, limit):
        return self._iter("routing")

    def get_routing(self, id):
        return self._get("routing", id)

    def put_plugin(self, plugin):
        return self._put("plugin", plugin)

    def remove_plugin(self, id):
        if id in self.applied["appliedIDs"]:
            raise ValueError(f"{id} is already applied")
        self.objects["plugin"].pop(id, None)

    def get_plugins(self, limit):
        return self._iter("plugin")

    def get_plugin(self, id):
        return self._get("plugin", id)

    def apply_plugins(self, applied):
        self.applied = dict(applied)

    def get_applied_plugins(self):
        return self.applied

    def registry_proxy(self, proxy, ttl):
        self.objects.setdefault("proxy", {})[proxy["addr"]] = proxy

    def get_proxies(self, limit):
        return iter(self.objects.get("proxy", {}).values())

    def watch(self, events, stop):
        stop.wait(0)

    def clean(self):
        for bucket in self.objects.values():
            bucket.clear()

    def set_id(self, id):
        self.next_id = id

    def backup_to(self, to):
        self.backups.append(to)

    def batch(self, batch):
        return batch

    def system(self):
        return {kind: len(bucket) for kind, bucket in self.objects.items()}


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def api(store):
    return RestAPI(store)


def test_parse_id_param_values():
    assert parse_id_param({"id": "42"}) == 42
    assert parse_id_param({"id": str(2**64 - 1)}) == 2**64 - 1


@pytest.mark.parametrize("params", [None, {}, {"id": ""}, {"id": "abc"}, {"id": "-1"}, {"id": str(2**64)}])
def test_parse_id_param_errors(params):
    with pytest.raises(ParamError):
        parse_id_param(params)


def test_parse_limit_query_defaults_and_values():
    assert parse_limit_query(None) == LimitQuery(limit=32, after_id=0)
    assert parse_limit_query({"limit": "5", "after": "7"}) == LimitQuery(limit=5, after_id=7)
    assert parse_limit_query({"limit": ["3"]}).limit == 3


@pytest.mark.parametrize("query", [{"limit": "x"}, {"after": "-2"}, {"limit": str(2**63)}])
def test_parse_limit_query_errors(query):
    with pytest.raises(ParamError):
        parse_limit_query(query)


def test_json_result_to_dict():
    assert JSONResult(code=-1, data="boom").to_dict() == {"code": -1, "data": "boom"}
    assert JSONResult().to_dict() == {"code": 0, "data": None}


def test_put_then_get_cluster(api):
    put = api.dispatch("PUT", "/v1/clusters", body=json.dumps({"name": "c1"}))
    assert put.code == 0
    got = api.dispatch("GET", f"/v1/clusters/{put.data}")
    assert got.code == 0
    assert got.data["name"] == "c1"
    assert got.data["id"] == put.data


def test_get_missing_reports_error(api):
    result = api.dispatch("GET", "/v1/servers/9")
    assert result.code == -1
    assert "not found" in result.data


def test_delete_server(api, store):
    sid = api.dispatch("PUT", "/v1/servers", body={"addr": "127.0.0.1:80"}).data
    result = api.dispatch("DELETE", f"/v1/servers/{sid}")
    assert result == JSONResult()
    assert sid not in store.objects["server"]


def test_list_respects_limit_and_after(api):
    ids = [api.dispatch("PUT", "/v1/apis", body={"name": f"a{i}"}).data for i in range(5)]
    listed = api.dispatch("GET", "/v1/apis", query={"limit": "2", "after": str(ids[1])})
    assert [item["id"] for item in listed.data] == ids[2:4]
    everything = api.dispatch("GET", "/v1/apis")
    assert [item["id"] for item in everything.data] == ids


def test_binds(api, store):
    body = json.dumps({"clusterID": 3, "serverID": 8})
    assert api.dispatch("PUT", "/v1/binds", body=body).code == 0
    assert api.dispatch("GET", "/v1/clusters/3/binds").data == [8]
    assert api.dispatch("DELETE", "/v1/binds", body=body).code == 0
    assert store.binds[3] == []
    api.dispatch("PUT", "/v1/binds", body=body)
    api.dispatch("DELETE", "/v1/clusters/3/binds")
    assert api.dispatch("GET", "/v1/clusters/3/binds").data == []


def test_plugin_apply_route_wins_over_id(api, store):
    pid = api.dispatch("PUT", "/v1/plugins", body={"name": "p"}).data
    api.dispatch("PUT", "/v1/plugins/apply", body={"appliedIDs": [pid]})
    assert api.dispatch("GET", "/v1/plugins/apply").data == {"appliedIDs": [pid]}
    removed = api.dispatch("DELETE", f"/v1/plugins/{pid}")
    assert removed.code == -1
    assert "already applied" in removed.data


def test_system_and_backup(api, store):
    api.dispatch("PUT", "/v1/routings", body={"name": "r"})
    assert api.dispatch("GET", "/v1/system").data["routing"] == 1
    assert api.dispatch("POST", "/v1/system/backup", body={"toAddr": "10.0.0.1:9092"}).code == 0
    assert store.backups == ["10.0.0.1:9092"]


@pytest.mark.parametrize("body", [None, "", "not json", "[1, 2]"])
def test_bad_body(api, body):
    with pytest.raises(ParamError):
        api.dispatch("PUT", "/v1/clusters", body=body)


def test_bad_bind_field(api):
    with pytest.raises(ParamError):
        api.dispatch("PUT", "/v1/binds", body={"clusterID": "x", "serverID": 1})


def test_unknown_route(api):
    with pytest.raises(LookupError):
        api.dispatch("POST", "/v1/clusters/1")


def test_routes_listed(api):
    routes = api.routes()
    assert ("GET", "/v1/clusters/:id") in routes
    assert ("POST", "/v1/system/backup") in routes
    assert routes.count(("GET", "/v1/plugins/apply")) == 1


def test_static_files(tmp_path, store):
    (tmp_path / "index.html").write_bytes(b"<html>ui</html>")
    (tmp_path / "app.js").write_bytes(b"var x;")
    rest = RestAPI(store, str(tmp_path), "/ui")
    assert rest.dispatch("GET", "/ui/app.js") == b"var x;"
    assert rest.dispatch("GET", "/ui") == b"<html>ui</html>"
    with pytest.raises(LookupError):
        rest.dispatch("GET", "/ui/missing.js")
    with pytest.raises(LookupError):
        rest.dispatch("GET", "/ui/../secret.txt")