"""Periodic push of metrics to a Prometheus push gateway."""

from __future__ import annotations

import logging
import math
import re
import socket
import threading
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass, field
from typing import Callable, Iterable, Mapping, Optional

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 15.0
CONTENT_TYPE = "text/plain; version=0.0.4; charset=utf-8"

_LABEL_NAME = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")


class PushError(Exception):
    """Raised when metrics cannot be pushed."""


@dataclass
class MetricCfg:
    """Where and how often metrics are pushed; ``duration_sync`` is in seconds."""

    job: str
    instance: str
    address: str
    duration_sync: float


@dataclass
class MetricFamily:
    """A named group of samples, each a label mapping and a value."""

    name: str
    samples: list[tuple[Mapping[str, str], float]] = field(default_factory=list)
    help: str = ""
    type: str = "untyped"


Gatherer = Callable[[], Iterable[MetricFamily]]


def instance_grouping_key(instance: str) -> dict[str, str]:
    """Return ``{"instance": instance}``, using the host name when empty."""
    if not instance:
        try:
            instance = socket.gethostname()
        except OSError:
            instance = "unknown"
    return {"instance": instance}


def build_push_url(job: str, grouping: Mapping[str, str], push_url: str) -> str:
    """Return the push gateway URL for ``job`` and its grouping labels."""
    if "://" not in push_url:
        push_url = "http://" + push_url
    if push_url.endswith("/"):
        push_url = push_url[:-1]

    if "/" in job:
        raise PushError(f"job contains '/': {job}")
    components = [urllib.parse.quote_plus(job)]
    for name, value in grouping.items():
        if not _LABEL_NAME.match(name):
            raise PushError(f"grouping label has invalid name: {name}")
        if "/" in value:
            raise PushError(f"value of grouping label {name} contains '/': {value}")
        components.extend((name, value))
    return f"{push_url}/metrics/job/{'/'.join(components)}"


def _escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")


def _format_value(value: float) -> str:
    value = float(value)
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    return repr(value)


def _encode(families: Iterable[MetricFamily]) -> bytes:
    lines = []
    for family in families:
        if family.help:
            help_text = family.help.replace("\\", "\\\\").replace("\n", "\\n")
            lines.append(f"# HELP {family.name} {help_text}")
        lines.append(f"# TYPE {family.name} {family.type}")
        for labels, value in family.samples:
            rendered = ",".join(f'{k}="{_escape(v)}"' for k, v in labels.items())
            label_part = "{" + rendered + "}" if rendered else ""
            lines.append(f"{family.name}{label_part} {_format_value(value)}")
    return ("\n".join(lines) + "\n").encode("utf-8") if lines else b""


def push(
    job: str,
    grouping: Mapping[str, str],
    push_url: str,
    gatherer: Gatherer,
    method: str = "PUT",
) -> None:
    """Gather metrics and send them to the push gateway."""
    url = build_push_url(job, grouping, push_url)
    families = list(gatherer())
    for family in families:
        for labels, _ in family.samples:
            for name in labels:
                if name == "job":
                    raise PushError(f"pushed metric {family.name} ({dict(labels)}) already contains a job label")
                if name in grouping:
                    raise PushError(
                        f"pushed metric {family.name} ({dict(labels)}) already contains grouping label {name}"
                    )

    request = urllib.request.Request(
        url, data=_encode(families), method=method, headers={"Content-Type": CONTENT_TYPE}
    )
    try:
        with urllib.request.urlopen(request, timeout=DEFAULT_TIMEOUT) as response:
            status = response.status
            body = response.read()
    except urllib.error.HTTPError as exc:
        status = exc.code
        body = exc.read()
    except urllib.error.URLError as exc:
        raise PushError(f"could not reach {url}: {exc.reason}") from exc
    if status != 202:
        text = body.decode("utf-8", errors="replace")
        raise PushError(f"unexpected status code {status} while pushing to {url}: {text}")


def start_metrics_push(
    cfg: Optional[MetricCfg],
    gatherer: Gatherer,
    stop_event: Optional[threading.Event] = None,
) -> Optional[threading.Thread]:
    """Push metrics every ``cfg.duration_sync`` seconds until ``stop_event`` is set.

    Returns the pushing thread, or None when pushing is disabled.
    """
    if cfg is None or not cfg.duration_sync or not cfg.address:
        logger.info("metric: disable prometheus push client")
        return None

    stop = stop_event if stop_event is not None else threading.Event()
    grouping = instance_grouping_key(cfg.instance)

    def run() -> None:
        while not stop.wait(cfg.duration_sync):
            try:
                push(cfg.job, grouping, cfg.address, gatherer, "PUT")
            except Exception as exc:
                logger.error("metric: could not push metrics to prometheus pushgateway: %s", exc)
        logger.info("stop: prometheus push client stopped")

    logger.info("metric: start prometheus push client")
    thread = threading.Thread(target=run, name="metrics-push", daemon=True)
    thread.start()
    return thread