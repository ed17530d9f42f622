"""Gateway tool modules."""

from idebridge.gateway.tools.diagnostics_tools import DiagnosticsTools
from idebridge.gateway.tools.refactor_tools import RefactorTools
from idebridge.gateway.tools.routing_tools import RoutingTools
from idebridge.gateway.tools.status_tools import StatusTools

__all__ = [
    "StatusTools",
    "RoutingTools",
    "RefactorTools",
    "DiagnosticsTools",
]
