import pytest

from apigate.addr import get_addr_format
from apigate.store import (
    BasicAuth,
    Evt,
    EvtSrc,
    EvtType,
    Store,
    UnsupportedStoreError,
    get_addr_key,
    get_key,
    get_store_from,
    register_schema,
)


def test_get_key_is_zero_padded_to_twenty_digits():
    assert get_key("/gw/clusters", 1) == "/gw/clusters/00000000000000000001"


@pytest.mark.parametrize("ident", [0, 7, 123456, 2**64 - 1])
def test_get_key_round_trips_id(ident):
    prefix, _, digits = get_key("/p", ident).rpartition("/")
    assert prefix == "/p"
    assert len(digits) == 20
    assert int(digits) == ident


def test_get_key_sorts_by_id():
    ids = [5, 100, 12, 9, 1000]
    keys = sorted(get_key("/p", i) for i in ids)
    assert keys == [get_key("/p", i) for i in sorted(ids)]


def test_get_addr_key_uses_padded_address():
    addr = "1.2.3.4:80"
    key = get_addr_key("/gw/proxies", addr)
    assert key == "/gw/proxies/" + get_addr_format(addr)
    assert key.endswith(addr)


def test_unsupported_scheme_raises():
    with pytest.raises(UnsupportedStoreError, match="not support: nosuch://h:1"):
        get_store_from("nosuch://h:1", "/gw")


def test_registered_factory_receives_host_prefix_and_auth():
    seen = {}

    def factory(host, prefix, auth):
        seen["args"] = (host, prefix, auth)
        return "the-store"

    register_schema("memtest", factory)
    password = "password"
    result = get_store_from("MEMTEST://a:1,b:2", "/gw", "user", password)
    assert result == "the-store"
    assert seen["args"] == ("a:1,b:2", "/gw", BasicAuth(user_name="user", password=password))


def test_basic_auth_hides_password_in_repr():
    password = "secret"
    auth = BasicAuth(user_name="user", password=password)
    assert "secret" not in repr(auth)
    assert auth.password == password


def test_store_is_abstract():
    with pytest.raises(TypeError):
        Store()


def test_event_enums_keep_source_values():
    assert [t.value for t in EvtType] == [0, 1, 2]
    assert EvtSrc.APPLY_PLUGIN.value == 7
    evt = Evt(EvtSrc.API, EvtType.DELETE, "3", None)
    assert (evt.src, evt.type, evt.key) == (EvtSrc.API, EvtType.DELETE, "3")