"""Instance listing tools for the IDE gateway."""

from typing import Any

from idebridge.gateway.tools.helpers import Snapshot, format_status


class StatusTools:
    """Read-only views of the current discovery snapshot."""

    def __init__(self, snapshot: Snapshot) -> None:
        """Initialize status tools.

        Args:
            snapshot: Callable that runs a fresh discovery scan
        """
        self.snapshot = snapshot

    def list_instances(self) -> dict[str, Any]:
        instances = self.snapshot()
        return {
            "success": True,
            "count": len(instances),
            "instances": [instance.to_dict() for instance in instances],
        }

    def status(self) -> dict[str, Any]:
        """Human-readable report of every running IDE and what it can do."""
        instances = self.snapshot()
        return {
            "success": True,
            "count": len(instances),
            "report": format_status(instances),
            "instances": [instance.to_dict() for instance in instances],
        }
