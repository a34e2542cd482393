"""Building blocks for an API gateway: store contract, metadata service, admin API dispatch and helpers."""

__version__ = "0.1.0"