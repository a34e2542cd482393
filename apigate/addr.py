"""Sortable key formats for network addresses."""

MIN_ADDR_FORMAT = "000000000000000000000"
MAX_ADDR_FORMAT = "255.255.255.255:99999"

_ADDR_WIDTH = len(MIN_ADDR_FORMAT)


def get_addr_format(addr: str) -> str:
    """Return ``addr`` left-padded with zeros so that keys sort by address."""
    return addr.rjust(_ADDR_WIDTH, "0")


def get_addr_next_format(addr: str) -> str:
    """Return the smallest key that sorts directly after ``addr``."""
    if not addr:
        raise ValueError("address must not be empty")
    return addr[:-1] + chr(ord(addr[-1]) + 1)