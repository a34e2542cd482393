import pytest

from apigate.addr import (
    MAX_ADDR_FORMAT,
    MIN_ADDR_FORMAT,
    get_addr_format,
    get_addr_next_format,
)


def test_empty_address_formats_to_minimum():
    assert get_addr_format("") == MIN_ADDR_FORMAT


def test_maximum_is_already_formatted():
    assert get_addr_format(MAX_ADDR_FORMAT) == MAX_ADDR_FORMAT


def test_format_pads_left_with_zeros():
    addr = "10.0.0.1:80"
    formatted = get_addr_format(addr)
    assert len(formatted) == len(MIN_ADDR_FORMAT)
    assert formatted.endswith(addr)
    assert set(formatted[: len(formatted) - len(addr)]) == {"0"}


def test_long_address_is_unchanged():
    addr = "x" * 30
    assert get_addr_format(addr) == addr


def test_formatted_keys_lie_between_bounds():
    for addr in ["1.2.3.4:5", "192.168.1.1:8080", "255.255.255.255:99999"]:
        formatted = get_addr_format(addr)
        assert MIN_ADDR_FORMAT <= formatted <= MAX_ADDR_FORMAT


def test_next_format_sorts_after_input():
    key = get_addr_format("10.0.0.1:80")
    nxt = get_addr_next_format(key)
    assert nxt > key
    assert len(nxt) == len(key)
    assert nxt[:-1] == key[:-1]


def test_next_format_precedes_following_address():
    key = get_addr_format("10.0.0.1:80")
    other = get_addr_format("10.0.0.1:81")
    assert key < get_addr_next_format(key) <= other


def test_next_format_of_empty_raises():
    with pytest.raises(ValueError):
        get_addr_next_format("")