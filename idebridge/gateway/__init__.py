"""IDE gateway: discovery, ownership routing and the MCP tool surface."""

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from idebridge.gateway.server import IdeGateway


def __getattr__(name: str) -> Any:
    if name == "IdeGateway":
        from idebridge.gateway.server import IdeGateway

        return IdeGateway
    raise AttributeError(f"module 'idebridge.gateway' has no attribute '{name}'")


__all__ = ["IdeGateway"]
