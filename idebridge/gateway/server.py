"""IDE gateway: MCP server routing semantic refactorings to running IDEs."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from collections.abc import Callable
from typing import Any, cast

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool

from idebridge.core.config import GatewayConfig, parse_ports
from idebridge.core.constants import DEFAULT_DIAGNOSTICS_LIMIT
from idebridge.core.types import InstanceDescriptor
from idebridge.gateway.client import InstanceClient
from idebridge.gateway.discovery import DiscoveryScanner, endpoints_for
from idebridge.gateway.routing import OwnershipRouter
from idebridge.gateway.tools import DiagnosticsTools, RefactorTools, RoutingTools, StatusTools

_gateway_log = logging.getLogger("idebridge.gateway")


class IdeGateway:
    """Client-facing facade: discover, route, call the owning IDE, shape the result.

    No state survives between requests: every call takes its own discovery
    snapshot and passes it down explicitly.
    """

    def __init__(
        self,
        config: GatewayConfig | None = None,
        scanner: DiscoveryScanner | None = None,
        router: OwnershipRouter | None = None,
        client_factory: Callable[[str], InstanceClient] | None = None,
    ) -> None:
        self.config = config or GatewayConfig.from_env()
        self.scanner = scanner or DiscoveryScanner(timeout=self.config.probe_timeout)
        self.router = router or OwnershipRouter()
        self.client_factory = client_factory or self._default_client
        self._init_tool_modules()

    def _default_client(self, endpoint: str) -> InstanceClient:
        return InstanceClient(endpoint, timeout=self.config.call_timeout)

    def _init_tool_modules(self) -> None:
        self.status_tools = StatusTools(self.snapshot)
        self.routing_tools = RoutingTools(self.snapshot, self.router, self.client_factory)
        self.refactor_tools = RefactorTools(self.snapshot, self.router, self.client_factory)
        self.diagnostics_tools = DiagnosticsTools(self.snapshot, self.router, self.client_factory)

    def snapshot(self) -> tuple[InstanceDescriptor, ...]:
        return self.scanner.scan(endpoints_for(self.config.ports, self.config.host))

    # Tool delegates

    def list_instances(self) -> dict[str, Any]:
        return self.status_tools.list_instances()

    def status(self) -> dict[str, Any]:
        return self.status_tools.status()

    def locate_and_route(self, file: str) -> dict[str, Any]:
        return self.routing_tools.locate_and_route(file)

    def resolve_coordinate(
        self, file: str, line: int, column: int, project: str | None = None
    ) -> dict[str, Any]:
        return self.routing_tools.resolve_coordinate(file, line, column, project)

    def perform_mutation(
        self, operation: str, target: dict[str, Any], params: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        return self.refactor_tools.perform_mutation(operation, target, params)

    def rename(
        self,
        file: str,
        line: int,
        column: int,
        new_name: str,
        search_in_comments: bool = False,
        search_text_occurrences: bool = False,
        project: str | None = None,
    ) -> dict[str, Any]:
        return self.refactor_tools.rename(
            file, line, column, new_name, search_in_comments, search_text_occurrences, project
        )

    def find_usages(
        self, file: str, line: int, column: int, project: str | None = None
    ) -> dict[str, Any]:
        return self.refactor_tools.find_usages(file, line, column, project)

    def move(
        self,
        file: str,
        line: int,
        column: int,
        target_package: str,
        search_in_comments: bool = False,
        search_in_non_code_files: bool = False,
        project: str | None = None,
    ) -> dict[str, Any]:
        return self.refactor_tools.move(
            file, line, column, target_package, search_in_comments, search_in_non_code_files, project
        )

    def extract_method(
        self,
        file: str,
        start_line: int,
        start_column: int,
        end_line: int,
        end_column: int,
        method_name: str,
        project: str | None = None,
    ) -> dict[str, Any]:
        return self.refactor_tools.extract_method(
            file, start_line, start_column, end_line, end_column, method_name, project
        )

    def diagnostics(
        self,
        file: str | None = None,
        project: str | None = None,
        severity: list[str] | None = None,
        limit: int = DEFAULT_DIAGNOSTICS_LIMIT,
        run_inspections: bool = False,
    ) -> dict[str, Any]:
        return self.diagnostics_tools.diagnostics(file, project, severity, limit, run_inspections)

    def apply_fix(
        self,
        file: str,
        line: int,
        column: int,
        fix_id: int,
        diagnostic_message: str | None = None,
        project: str | None = None,
        run_inspections: bool = False,
    ) -> dict[str, Any]:
        return self.diagnostics_tools.apply_fix(
            file, line, column, fix_id, diagnostic_message, project, run_inspections
        )


gateway: IdeGateway | None = None

server = Server("idebridge")

_LOCATION_PROPERTIES: dict[str, Any] = {
    "file": {"type": "string", "description": "Absolute path to the source file"},
    "line": {"type": "integer", "description": "1-based line number", "minimum": 1},
    "column": {"type": "integer", "description": "1-based column number", "minimum": 1},
}
_PROJECT_PROPERTY: dict[str, Any] = {
    "project": {
        "type": "string",
        "description": "Project name or root path, when the file could belong to several projects",
    }
}


def _annotations(title: str, read_only: bool, destructive: bool = False) -> dict[str, Any]:
    return {
        "title": title,
        "readOnlyHint": read_only,
        "destructiveHint": destructive,
        "idempotentHint": read_only,
        "openWorldHint": False,
    }


_TOOL_SPECS: list[dict[str, Any]] = [
    {
        "name": "ide_status",
        "description": "Report running IDEs, their open projects, indexing state and loaded language plugins.",
        "input_schema": {"type": "object", "properties": {}},
        "annotations": _annotations("IDE Status", read_only=True),
    },
    {
        "name": "ide_list_instances",
        "description": "List running IDE instances with their workspaces and per-language capabilities.",
        "input_schema": {"type": "object", "properties": {}},
        "annotations": _annotations("List IDE Instances", read_only=True),
    },
    {
        "name": "ide_locate_and_route",
        "description": "Find which running IDE owns a file (most specific open project wins).",
        "input_schema": {
            "type": "object",
            "properties": {"file": _LOCATION_PROPERTIES["file"]},
            "required": ["file"],
        },
        "annotations": _annotations("Locate Owning IDE", read_only=True),
    },
    {
        "name": "ide_resolve_coordinate",
        "description": "Resolve a file position to the code element there (usages resolve to their declaration).",
        "input_schema": {
            "type": "object",
            "properties": {**_LOCATION_PROPERTIES, **_PROJECT_PROPERTY},
            "required": ["file", "line", "column"],
        },
        "annotations": _annotations("Resolve Code Element", read_only=True),
    },
    {
        "name": "ide_rename",
        "description": "Rename the symbol at a position and update every reference across the project.",
        "input_schema": {
            "type": "object",
            "properties": {
                **_LOCATION_PROPERTIES,
                "new_name": {"type": "string", "description": "New name for the symbol"},
                "search_in_comments": {"type": "boolean", "default": False},
                "search_text_occurrences": {"type": "boolean", "default": False},
                **_PROJECT_PROPERTY,
            },
            "required": ["file", "line", "column", "new_name"],
        },
        "annotations": _annotations("Rename Symbol", read_only=False),
    },
    {
        "name": "ide_find_usages",
        "description": "Find all usages of the symbol at a position.",
        "input_schema": {
            "type": "object",
            "properties": {**_LOCATION_PROPERTIES, **_PROJECT_PROPERTY},
            "required": ["file", "line", "column"],
        },
        "annotations": _annotations("Find Usages", read_only=True),
    },
    {
        "name": "ide_move",
        "description": "Move the declaration at a position to another package or module, updating imports.",
        "input_schema": {
            "type": "object",
            "properties": {
                **_LOCATION_PROPERTIES,
                "target_package": {
                    "type": "string",
                    "description": "Destination package (Java/Kotlin) or module/directory path",
                },
                "search_in_comments": {"type": "boolean", "default": False},
                "search_in_non_code_files": {"type": "boolean", "default": False},
                **_PROJECT_PROPERTY,
            },
            "required": ["file", "line", "column", "target_package"],
        },
        "annotations": _annotations("Move Declaration", read_only=False),
    },
    {
        "name": "ide_extract_method",
        "description": "Extract the selected code range into a new method or function.",
        "input_schema": {
            "type": "object",
            "properties": {
                "file": _LOCATION_PROPERTIES["file"],
                "start_line": {"type": "integer", "minimum": 1},
                "start_column": {"type": "integer", "minimum": 1},
                "end_line": {"type": "integer", "minimum": 1},
                "end_column": {"type": "integer", "minimum": 1},
                "method_name": {"type": "string", "description": "Name of the extracted method"},
                **_PROJECT_PROPERTY,
            },
            "required": ["file", "start_line", "start_column", "end_line", "end_column", "method_name"],
        },
        "annotations": _annotations("Extract Method", read_only=False),
    },
    {
        "name": "ide_perform_mutation",
        "description": "Generic mutation entry point: operation is rename, move or extract_method.",
        "input_schema": {
            "type": "object",
            "properties": {
                "operation": {"type": "string", "enum": ["rename", "move", "extract_method"]},
                "target": {
                    "type": "object",
                    "description": "file plus line/column, or start_/end_ line/column for extract_method",
                },
                "params": {
                    "type": "object",
                    "description": "new_name, target_package or method_name, plus optional flags",
                },
            },
            "required": ["operation", "target"],
        },
        "annotations": _annotations("Perform Mutation", read_only=False),
    },
    {
        "name": "ide_diagnostics",
        "description": (
            "List errors, warnings and other problems the IDE reports, with the quick fixes offered for each. "
            "Pass a file or directory, or only a project to scan the whole project."
        ),
        "input_schema": {
            "type": "object",
            "properties": {
                "file": {"type": "string", "description": "Absolute path to a file or directory"},
                **_PROJECT_PROPERTY,
                "severity": {
                    "type": "array",
                    "items": {"type": "string", "enum": ["ERROR", "WARNING", "WEAK_WARNING", "INFO", "HINT"]},
                    "description": "Only report these severities (default: all)",
                },
                "limit": {"type": "integer", "minimum": 1, "default": DEFAULT_DIAGNOSTICS_LIMIT},
                "run_inspections": {
                    "type": "boolean",
                    "default": False,
                    "description": "Run a fresh inspection pass instead of reading cached results",
                },
            },
        },
        "annotations": _annotations("IDE Diagnostics", read_only=True),
    },
    {
        "name": "ide_apply_fix",
        "description": "Apply one of the quick fixes listed by ide_diagnostics for the problem at a position.",
        "input_schema": {
            "type": "object",
            "properties": {
                **_LOCATION_PROPERTIES,
                "fix_id": {"type": "integer", "minimum": 0, "description": "Fix id from ide_diagnostics"},
                "diagnostic_message": {
                    "type": "string",
                    "description": "Message of the diagnostic, when several overlap at the position",
                },
                **_PROJECT_PROPERTY,
                "run_inspections": {"type": "boolean", "default": False},
            },
            "required": ["file", "line", "column", "fix_id"],
        },
        "annotations": _annotations("Apply Quick Fix", read_only=False),
    },
]

TOOL_SPECS: list[dict[str, Any]] = _TOOL_SPECS


@server.list_tools()
async def handle_list_tools() -> list[Tool]:
    """List available gateway tools."""
    return [
        Tool(
            name=str(spec["name"]),
            description=str(spec["description"]),
            inputSchema=cast(dict[str, Any], spec["input_schema"]),
            annotations=cast(dict[str, Any], spec["annotations"]),
        )
        for spec in _TOOL_SPECS
    ]


def _tool_to_method_name(tool_name: str) -> str:
    if not tool_name.startswith("ide_"):
        raise ValueError(f"Unsupported tool prefix: {tool_name}")
    return tool_name.removeprefix("ide_")


def _build_handler_from_spec(
    spec: dict[str, Any],
) -> Callable[[IdeGateway, dict[str, Any]], dict[str, Any]]:
    method_name = _tool_to_method_name(str(spec["name"]))
    input_schema = cast(dict[str, Any], spec.get("input_schema", {}))
    properties = cast(dict[str, Any], input_schema.get("properties", {}))
    required = set(cast(list[str], input_schema.get("required", [])))
    defaults = {
        name: config["default"]
        for name, config in properties.items()
        if isinstance(config, dict) and "default" in config
    }
    ordered_params = list(properties.keys())

    def handler(gateway_instance: IdeGateway, args: dict[str, Any]) -> dict[str, Any]:
        method = getattr(gateway_instance, method_name)
        call_kwargs: dict[str, Any] = {}
        for param in ordered_params:
            if param in required:
                call_kwargs[param] = args[param]
            else:
                call_kwargs[param] = args.get(param, defaults.get(param))
        return cast(dict[str, Any], method(**call_kwargs))

    return handler


_tool_handlers: dict[str, Callable[[IdeGateway, dict[str, Any]], dict[str, Any]]] = {
    str(spec["name"]): _build_handler_from_spec(spec) for spec in _TOOL_SPECS
}


def _error_response(
    *,
    code: str,
    message: str,
    tool: str,
    extra: dict[str, Any] | None = None,
) -> list[TextContent]:
    payload: dict[str, Any] = {
        "success": False,
        "error": message,
        "error_code": code,
        "tool": tool,
    }
    if extra:
        payload.update(extra)
    return [TextContent(type="text", text=json.dumps(payload))]


def _handle_tool_exception(name: str, error: Exception) -> list[TextContent]:
    if isinstance(error, KeyError):
        return _error_response(
            code="MISSING_ARGUMENT",
            message=f"Missing required argument: {error}",
            tool=name,
        )

    if isinstance(error, (ValueError, TypeError)):
        return _error_response(
            code="INVALID_ARGUMENT",
            message=f"Invalid argument: {error}",
            tool=name,
        )

    _gateway_log.warning(
        "tool_error tool=%s error=%s",
        name,
        str(error),
        extra={"tool": name, "error": str(error)},
    )
    return _error_response(
        code="EXECUTION_ERROR",
        message=str(error),
        tool=name,
        extra={"error_type": type(error).__name__},
    )


def _serialize_tool_result(result: dict[str, Any]) -> list[TextContent]:
    return [TextContent(type="text", text=json.dumps(result, ensure_ascii=False))]


async def call_tool(current_gateway: IdeGateway, name: str, arguments: dict[str, Any]) -> list[TextContent]:
    """Run one tool against ``current_gateway``; blocking work happens off the event loop."""
    _gateway_log.info("tool_call tool=%s", name, extra={"tool": name})
    handler = _tool_handlers.get(name)
    if handler is None:
        return _error_response(
            code="UNKNOWN_TOOL",
            message=f"Unknown tool: {name}",
            tool=name,
            extra={"available_tools": list(_tool_handlers.keys())},
        )
    try:
        result = await asyncio.to_thread(handler, current_gateway, arguments or {})
    except Exception as e:
        return _handle_tool_exception(name, e)
    return _serialize_tool_result(result)


@server.call_tool()
async def handle_call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
    if gateway is None:
        return _error_response(code="GATEWAY_NOT_INIT", message="Gateway not initialized", tool=name)
    return await call_tool(gateway, name, arguments)


async def main_stdio() -> None:
    """Run the gateway as an MCP server over stdio."""
    global gateway
    if not gateway:
        gateway = IdeGateway()

    async with stdio_server() as (read_stream, write_stream):
        initialization_options = server.create_initialization_options()
        await server.run(read_stream, write_stream, initialization_options)


def build_config(args: argparse.Namespace) -> GatewayConfig:
    """Overlay CLI flags on the environment-derived configuration."""
    config = GatewayConfig.from_env()
    return GatewayConfig(
        host=args.host or config.host,
        ports=parse_ports(args.ports) if args.ports else config.ports,
        probe_timeout=args.probe_timeout or config.probe_timeout,
        call_timeout=config.call_timeout,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="idebridge MCP gateway (stdio)")
    parser.add_argument("--host", help="Address the IDE instances listen on (default 127.0.0.1)")
    parser.add_argument("--ports", help="Comma-separated candidate ports (default 8765-8777)")
    parser.add_argument("--probe-timeout", type=float, help="Discovery probe timeout in seconds")
    parser.add_argument("--log-level", default="WARNING", help="Logging level written to stderr")
    return parser


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=args.log_level.upper(), stream=sys.stderr)
    try:
        config = build_config(args)
    except ValueError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(2)

    global gateway
    gateway = IdeGateway(config)
    asyncio.run(main_stdio())


if __name__ == "__main__":
    main()
