"""Ownership lookup and coordinate resolution tools."""

from typing import Any

from idebridge.core.types import CoordinateRequest
from idebridge.gateway.routing import OwnershipRouter
from idebridge.gateway.tools.helpers import (
    ClientFactory,
    Snapshot,
    invalid,
    route_and_call,
    validate_position,
    validate_text,
)


class RoutingTools:
    def __init__(self, snapshot: Snapshot, router: OwnershipRouter, client_factory: ClientFactory) -> None:
        self.snapshot = snapshot
        self.router = router
        self.client_factory = client_factory

    def locate_and_route(self, file: str) -> dict[str, Any]:
        valid, error = validate_text(file, "file must be a non-empty path")
        if not valid:
            return invalid(error)
        return self.router.route(file, self.snapshot()).to_dict()

    def resolve_coordinate(
        self, file: str, line: int, column: int, project: str | None = None
    ) -> dict[str, Any]:
        valid, error = validate_text(file, "file must be a non-empty path")
        if valid:
            valid, error = validate_position(line, column)
        if not valid:
            return invalid(error)
        request = CoordinateRequest(file, line, column, project)
        return route_and_call(
            self.snapshot, self.router, self.client_factory, file, "/resolve", request.to_dict()
        )
