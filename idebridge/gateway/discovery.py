"""Concurrent discovery of live instances.

Every candidate endpoint is probed in parallel with one short timeout.
A probe that fails or is still pending when the timeout expires is simply
left out of the snapshot: an absent instance is the normal case. There is
no retry; the next scan picks up whatever has started since.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass

import requests

from idebridge.core.constants import DEFAULT_HOST, PROBE_GRACE_SECONDS, PROBE_TIMEOUT_SECONDS, STATUS_PATH
from idebridge.core.types import InstanceDescriptor

_gateway_log = logging.getLogger("idebridge.gateway")


@dataclass(frozen=True)
class Endpoint:
    host: str
    port: int

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"


def endpoints_for(ports: Iterable[int], host: str = DEFAULT_HOST) -> list[Endpoint]:
    return [Endpoint(host, port) for port in ports]


def probe_endpoint(endpoint: Endpoint, timeout: float) -> InstanceDescriptor | None:
    """Ask one endpoint for its status; None when it is absent or not an instance."""
    try:
        response = requests.get(f"{endpoint.base_url}{STATUS_PATH}", timeout=timeout)
    except requests.RequestException as e:
        _gateway_log.debug(
            "probe_miss endpoint=%s error=%s",
            endpoint.base_url,
            type(e).__name__,
            extra={"endpoint": endpoint.base_url},
        )
        return None
    if response.status_code != 200:
        return None
    try:
        payload = response.json()
    except ValueError:
        return None
    if not isinstance(payload, dict) or payload.get("ok") is not True:
        return None
    return InstanceDescriptor.from_status(endpoint.base_url, endpoint.port, payload)


class DiscoveryScanner:
    """Produces a fresh, immutable snapshot of live instances per call."""

    def __init__(
        self,
        timeout: float = PROBE_TIMEOUT_SECONDS,
        probe: Callable[[Endpoint, float], InstanceDescriptor | None] = probe_endpoint,
        grace: float = PROBE_GRACE_SECONDS,
    ) -> None:
        self.timeout = timeout
        self.probe = probe
        self.grace = grace

    def scan(self, endpoints: Iterable[Endpoint]) -> tuple[InstanceDescriptor, ...]:
        candidates = list(endpoints)
        if not candidates:
            return ()

        pool = ThreadPoolExecutor(max_workers=len(candidates), thread_name_prefix="idebridge-probe")
        futures: list[Future[InstanceDescriptor | None]] = [
            pool.submit(self.probe, endpoint, self.timeout) for endpoint in candidates
        ]
        # Never block on stragglers; their results are discarded.
        wait(futures, timeout=self.timeout + self.grace)
        pool.shutdown(wait=False, cancel_futures=True)

        found: list[InstanceDescriptor] = []
        for endpoint, future in zip(candidates, futures):
            if not future.done() or future.cancelled():
                _gateway_log.debug(
                    "probe_timeout endpoint=%s", endpoint.base_url, extra={"endpoint": endpoint.base_url}
                )
                continue
            error = future.exception()
            if error is not None:
                _gateway_log.debug(
                    "probe_error endpoint=%s error=%s",
                    endpoint.base_url,
                    str(error),
                    extra={"endpoint": endpoint.base_url},
                )
                continue
            descriptor = future.result()
            if descriptor is not None:
                found.append(descriptor)

        _gateway_log.info(
            "discovery_complete probed=%d live=%d",
            len(candidates),
            len(found),
            extra={"probed": len(candidates), "live": len(found)},
        )
        return tuple(found)
