"""HTTP calls from the gateway into one instance."""

from __future__ import annotations

import logging
from typing import Any

import requests

from idebridge.core.constants import CALL_TIMEOUT_SECONDS
from idebridge.core.errors import OperationError

_gateway_log = logging.getLogger("idebridge.gateway")


class InstanceClient:
    def __init__(self, endpoint: str, timeout: float = CALL_TIMEOUT_SECONDS) -> None:
        self.endpoint = endpoint.rstrip("/")
        self.timeout = timeout

    def post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        """POST a JSON body; transport failures come back as INSTANCE_UNREACHABLE payloads."""
        url = f"{self.endpoint}{path}"
        try:
            response = requests.post(url, json=payload, timeout=self.timeout)
        except requests.Timeout:
            return OperationError.instance_unreachable(
                self.endpoint, f"no response within {self.timeout:g}s"
            ).to_dict()
        except requests.RequestException as e:
            _gateway_log.warning(
                "instance_call_failed url=%s error=%s",
                url,
                str(e),
                extra={"url": url, "error": str(e)},
            )
            return OperationError.instance_unreachable(self.endpoint, str(e)).to_dict()

        try:
            body = response.json()
        except ValueError:
            return OperationError.instance_unreachable(
                self.endpoint, f"HTTP {response.status_code} with a non-JSON body"
            ).to_dict()
        if not isinstance(body, dict):
            return OperationError.instance_unreachable(self.endpoint, "unexpected response shape").to_dict()
        return body
