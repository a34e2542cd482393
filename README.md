# apigate

Building blocks for an API gateway's control plane and proxy path, written
with the Python standard library only.

## Modules

- `apigate.store`: the storage contract `Store` (an abstract base class for
  clusters, servers, binds, APIs, routings, plugins and proxies), change
  events (`Evt`, `EvtSrc`, `EvtType`), `BasicAuth`, the key layout helpers
  `get_key` and `get_addr_key`, and a schema registry: `register_schema`
  installs a factory for a URL scheme, and `get_store_from` picks the factory
  by the scheme of a registry address. An unknown scheme raises
  `UnsupportedStoreError`.
- `apigate.meta_service`: `MetaService` runs metadata calls against a store.
  Each call takes a `CallContext` (or `None`); a context that was cancelled,
  or whose timeout has passed, makes the call raise `RPCCancelled`. Listing
  calls return iterators that read the store `LIMIT` (32) objects at a time.
  `init_service(db)` installs a process-wide store and service.
- `apigate.rest`: `RestAPI`, the `/v1` management API over a store.
  `dispatch(method, path, query, body)` routes one request and returns a
  `JSONResult` (`code` 0 with the result in `data`, or `code` -1 with the
  error text), or the bytes of a file under the UI directory for `GET`
  requests below the UI prefix. Unparsable input raises `ParamError`; a path
  nothing answers raises `LookupError`. `routes()` lists every
  (method, path pattern) served. `parse_id_param` and `parse_limit_query`
  parse the `id` path parameter and the `limit`/`after` paging query into
  `LimitQuery`.
- `apigate.analysis`: `Analysis` keeps request, reject, failure and success
  counters per key and samples them on a `TimeoutWheel` to give QPS,
  latency maximum, minimum and average (milliseconds), success and failure
  rates. Intervals are in seconds; response costs are given in nanoseconds.
- `apigate.barrier`: `RateBarrier(rate, base)` lets `rate` out of every
  `base` consecutive calls through.
- `apigate.lru`: `LRUCache`, an LRU cache bounded by the total bytes of its
  values, with an optional eviction callback.
- `apigate.httpclient`: `FastHTTPClient`, a keep-alive HTTP/1.1 client with a
  per-address connection pool, configured by `HTTPOption`
  (`default_http_option()`); it sends `HTTPRequest` and returns
  `HTTPResponse`, and raises `NoFreeConnectionsError` when a host's pool is
  exhausted.
- `apigate.metricpush`: pushes `MetricFamily` values in the text exposition
  format to a push gateway: `build_push_url`, `push`, `instance_grouping_key`
  and `start_metrics_push`, which pushes every `MetricCfg.duration_sync`
  seconds on a background thread until a stop event is set. Failures raise
  `PushError`.
- `apigate.ipaddr`: `client_ip(headers, remote_ip)` takes the first
  `X-Forwarded-For` entry, then `X-Real-Ip`, then the peer address.
- `apigate.addr`: `get_addr_format` and `get_addr_next_format`, sortable keys
  for network addresses.
- `apigate.buildinfo`: `BuildInfo`, `print_version` and
  `now_with_millisecond`.

## Install

    pip install .

For the tests:

    pip install ".[test]"
    pytest

## Examples

Let 30 percent of calls through:

    from apigate.barrier import RateBarrier

    barrier = RateBarrier(30, 100)
    if barrier.allow():
        ...

A cache bounded at 1 KiB:

    from apigate.lru import LRUCache

    cache = LRUCache(1024, None)
    cache.add("k", b"value")
    cache.get("k")  # b"value"

Resolve the real client address behind proxies:

    from apigate.ipaddr import client_ip

    client_ip({"X-Forwarded-For": "10.0.0.1, 10.0.0.2"}, "127.0.0.1")  # "10.0.0.1"

Collect request statistics, sampled every second:

    from apigate.analysis import Analysis, TimeoutWheel

    with TimeoutWheel() as wheel:
        stats = Analysis(wheel)
        stats.add_target(1, 1.0)
        stats.request(1)
        stats.response(1, 2_000_000)

Answer management requests from a store:

    from apigate.rest import RestAPI

    api = RestAPI(store, "/var/lib/ui", "/ui")
    result = api.dispatch("GET", "/v1/clusters", {"limit": "10"}, None)

## What this package does not do

- It ships no concrete `Store`. No scheme is registered by default, so
  `get_store_from` raises `UnsupportedStoreError` until a factory is added
  with `register_schema`.
- `RestAPI` and `MetaService` do not listen on a network port; they are
  called from whatever HTTP or RPC server the application runs.
- It has no command-line program and no request-forwarding proxy; it
  provides the pieces such a gateway is built from.