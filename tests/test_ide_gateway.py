import asyncio
import json
from typing import Any
from unittest.mock import MagicMock, patch

import pytest
import requests

from idebridge.core.config import GatewayConfig
from idebridge.core.types import InstanceDescriptor, WorkspaceInfo
from idebridge.gateway.client import InstanceClient
from idebridge.gateway.routing import OwnershipRouter


class FakeScanner:
    def __init__(self, instances: tuple[InstanceDescriptor, ...]) -> None:
        self.instances = instances
        self.scans = 0

    def scan(self, endpoints: Any) -> tuple[InstanceDescriptor, ...]:
        self.scans += 1
        return self.instances


class FakeClient:
    def __init__(self, endpoint: str, log: list[tuple[str, str, dict[str, Any]]], reply: dict[str, Any]) -> None:
        self.endpoint = endpoint
        self.log = log
        self.reply = reply

    def post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        self.log.append((self.endpoint, path, payload))
        return dict(self.reply)


def _instance(port: int, root: str) -> InstanceDescriptor:
    return InstanceDescriptor(
        endpoint=f"http://127.0.0.1:{port}",
        port=port,
        instance_kind="IntelliJ IDEA",
        version="2024.3",
        workspaces=(WorkspaceInfo("app", root),),
        plugin_flags=(("Java", True),),
        capabilities=(("Java", frozenset({"rename"})),),
    )


def _gateway(instances: tuple[InstanceDescriptor, ...], reply: dict[str, Any] | None = None):
    pytest.importorskip("mcp")
    from idebridge.gateway.server import IdeGateway

    log: list[tuple[str, str, dict[str, Any]]] = []
    scanner = FakeScanner(instances)
    gateway = IdeGateway(
        config=GatewayConfig(ports=(8765, 8766)),
        scanner=scanner,  # type: ignore[arg-type]
        router=OwnershipRouter(case_insensitive=False),
        client_factory=lambda endpoint: FakeClient(endpoint, log, reply or {"success": True, "message": "ok"}),  # type: ignore[arg-type,return-value]
    )
    return gateway, scanner, log


class TestIdeGateway:
    def test_list_instances(self) -> None:
        gateway, _, _ = _gateway((_instance(8765, "/home/dev/app"),))
        result = gateway.list_instances()
        assert result["count"] == 1
        assert result["instances"][0]["capabilityMap"] == {"Java": ["rename"]}

    def test_status_report_with_nothing_running(self) -> None:
        gateway, _, _ = _gateway(())
        assert "No JetBrains IDEs are running" in gateway.status()["report"]

    def test_status_report_lists_projects(self) -> None:
        gateway, _, _ = _gateway((_instance(8765, "/home/dev/app"),))
        report = gateway.status()["report"]
        assert "IntelliJ IDEA 2024.3" in report
        assert "- app: /home/dev/app" in report
        assert "Indexing: complete" in report
        assert "Languages: Java" in report

    def test_locate_and_route(self) -> None:
        gateway, _, _ = _gateway((_instance(8765, "/home/dev/app"), _instance(8766, "/home/dev/app/lib")))
        result = gateway.locate_and_route("/home/dev/app/lib/src/Util.java")
        assert result["success"] is True
        assert result["endpoint"] == "http://127.0.0.1:8766"
        assert result["workspace"] == {"name": "app", "path": "/home/dev/app/lib"}

    def test_locate_with_nothing_running(self) -> None:
        gateway, _, _ = _gateway(())
        result = gateway.locate_and_route("/home/dev/app/Main.java")
        assert result["success"] is False
        assert result["live_instances"] == []

    def test_rename_is_sent_to_owner(self) -> None:
        gateway, scanner, log = _gateway(
            (_instance(8765, "/home/dev/app"),),
            reply={"success": True, "message": "Renamed", "affectedFiles": ["/home/dev/app/Main.java"]},
        )
        result = gateway.rename("/home/dev/app/Main.java", 3, 5, " welcome ", search_in_comments=True)
        assert result["success"] is True
        assert result["instance"] == "IntelliJ IDEA"
        assert scanner.scans == 1
        assert log == [
            (
                "http://127.0.0.1:8765",
                "/rename",
                {
                    "file": "/home/dev/app/Main.java",
                    "line": 3,
                    "column": 5,
                    "newName": "welcome",
                    "searchInComments": True,
                    "searchTextOccurrences": False,
                },
            )
        ]

    def test_invalid_arguments_never_touch_the_network(self) -> None:
        gateway, scanner, log = _gateway((_instance(8765, "/home/dev/app"),))
        assert gateway.rename("/home/dev/app/Main.java", 0, 1, "x")["code"] == "INVALID_ARGUMENT"
        assert gateway.rename("/home/dev/app/Main.java", 1, 1, "   ")["code"] == "INVALID_ARGUMENT"
        assert gateway.move("/home/dev/app/Main.java", 1, 1, "")["code"] == "INVALID_ARGUMENT"
        assert gateway.extract_method("/home/dev/app/Main.java", 5, 1, 4, 1, "m")["code"] == "INVALID_ARGUMENT"
        assert scanner.scans == 0
        assert log == []

    def test_find_usages_adds_report(self) -> None:
        gateway, _, _ = _gateway(
            (_instance(8765, "/home/dev/app"),),
            reply={
                "success": True,
                "message": "Found 1 usage",
                "usages": [{"file": "/home/dev/app/B.java", "line": 4, "column": 9, "preview": "  a.run();  "}],
            },
        )
        result = gateway.find_usages("/home/dev/app/A.java", 2, 10)
        assert result["report"] == "Found 1 usage(s):\n\n/home/dev/app/B.java:4:9\n  a.run();"

    def test_perform_mutation_dispatches_by_name(self) -> None:
        gateway, _, log = _gateway((_instance(8765, "/home/dev/app"),))
        gateway.perform_mutation(
            "move", {"file": "/home/dev/app/A.java", "line": 1, "column": 14}, {"target_package": "com.acme"}
        )
        gateway.perform_mutation(
            "extract_method",
            {"file": "/home/dev/app/A.java", "start_line": 3, "start_column": 1, "end_line": 5, "end_column": 2},
            {"method_name": "helper"},
        )
        assert [entry[1] for entry in log] == ["/move", "/extractMethod"]
        assert log[0][2]["targetPackage"] == "com.acme"
        assert log[1][2]["methodName"] == "helper"
        assert gateway.perform_mutation("inline", {"file": "/x"})["code"] == "INVALID_ARGUMENT"

    def test_perform_mutation_rejects_non_object_target_and_params(self) -> None:
        gateway, scanner, log = _gateway((_instance(8765, "/home/dev/app"),))
        target: Any = "/home/dev/app/A.java"
        params: Any = ["B"]
        bad_target = gateway.perform_mutation("rename", target, {"new_name": "B"})
        location = {"file": "/home/dev/app/A.java", "line": 1, "column": 1}
        bad_params = gateway.perform_mutation("rename", location, params)
        assert bad_target["code"] == "INVALID_ARGUMENT"
        assert "target must be an object" in bad_target["error"]
        assert bad_params["code"] == "INVALID_ARGUMENT"
        assert "params must be an object" in bad_params["error"]
        assert scanner.scans == 0
        assert log == []

    def test_unowned_file_returns_diagnostic(self) -> None:
        gateway, _, log = _gateway((_instance(8765, "/home/dev/app"),))
        result = gateway.move("/srv/other/A.java", 1, 1, "pkg")
        assert result["code"] == "INSTANCE_NOT_FOUND"
        assert "Running IDEs:" in result["error"]
        assert log == []


class TestDiagnosticsTools:
    def test_file_diagnostics_are_routed_and_formatted(self) -> None:
        gateway, _, log = _gateway(
            (_instance(8765, "/home/dev/app"),),
            reply={
                "success": True,
                "message": "Found 1 diagnostic(s) in file 'A.java'",
                "diagnostics": [
                    {
                        "file": "/home/dev/app/A.java",
                        "line": 4,
                        "column": 9,
                        "endLine": 4,
                        "endColumn": 12,
                        "severity": "ERROR",
                        "message": "Cannot resolve symbol 'foo'",
                        "fixes": [{"id": 0, "name": "Create field 'foo'"}],
                    }
                ],
                "totalCount": 1,
                "truncated": False,
            },
        )
        result = gateway.diagnostics("/home/dev/app/A.java", severity=["ERROR"], limit=10)
        assert log == [
            (
                "http://127.0.0.1:8765",
                "/diagnostics",
                {"file": "/home/dev/app/A.java", "severity": ["ERROR"], "limit": 10, "runInspections": False},
            )
        ]
        assert result["report"] == (
            "Found 1 diagnostic(s):\n\n"
            "[ERROR] /home/dev/app/A.java:4:9 Cannot resolve symbol 'foo'\n"
            "  fix 0: Create field 'foo'"
        )

    def test_project_diagnostics_route_by_project_name(self) -> None:
        gateway, _, log = _gateway(
            (_instance(8765, "/home/dev/app"), _instance(8766, "/home/dev/web")),
            reply={"success": True, "message": "No diagnostics", "diagnostics": [], "totalCount": 0},
        )
        gateway.diagnostics(project="/home/dev/web")
        assert log[0][0] == "http://127.0.0.1:8766"
        assert log[0][2]["project"] == "/home/dev/web"
        assert "file" not in log[0][2]

    def test_project_not_open_anywhere(self) -> None:
        gateway, _, log = _gateway((_instance(8765, "/home/dev/app"),))
        result = gateway.diagnostics(project="billing")
        assert result["code"] == "INSTANCE_NOT_FOUND"
        assert "billing" in result["error"]
        assert log == []

    def test_diagnostics_argument_checks(self) -> None:
        gateway, scanner, log = _gateway((_instance(8765, "/home/dev/app"),))
        assert gateway.diagnostics()["code"] == "INVALID_ARGUMENT"
        assert gateway.diagnostics("/home/dev/app/A.java", limit=0)["code"] == "INVALID_ARGUMENT"
        severity: Any = "ERROR"
        assert gateway.diagnostics("/home/dev/app/A.java", severity=severity)["code"] == "INVALID_ARGUMENT"
        assert scanner.scans == 0
        assert log == []

    def test_apply_fix_is_sent_to_owner(self) -> None:
        gateway, _, log = _gateway(
            (_instance(8765, "/home/dev/app"),),
            reply={"success": True, "message": "Applied fix 'Create field'", "fixName": "Create field"},
        )
        result = gateway.apply_fix("/home/dev/app/A.java", 4, 9, 0, diagnostic_message="Cannot resolve")
        assert result["success"] is True
        assert log == [
            (
                "http://127.0.0.1:8765",
                "/applyFix",
                {
                    "file": "/home/dev/app/A.java",
                    "line": 4,
                    "column": 9,
                    "fixId": 0,
                    "runInspections": False,
                    "diagnosticMessage": "Cannot resolve",
                },
            )
        ]

    def test_apply_fix_rejects_bad_fix_id(self) -> None:
        gateway, scanner, _ = _gateway((_instance(8765, "/home/dev/app"),))
        assert gateway.apply_fix("/home/dev/app/A.java", 4, 9, -1)["code"] == "INVALID_ARGUMENT"
        assert gateway.apply_fix("/home/dev/app/A.java", 4, 9, True)["code"] == "INVALID_ARGUMENT"
        assert scanner.scans == 0

class TestMcpTools:
    def test_tool_names(self) -> None:
        pytest.importorskip("mcp")
        from idebridge.gateway.server import handle_list_tools

        tools = asyncio.run(handle_list_tools())
        names = {tool.name for tool in tools}
        assert {
            "ide_status",
            "ide_list_instances",
            "ide_locate_and_route",
            "ide_resolve_coordinate",
            "ide_rename",
            "ide_find_usages",
            "ide_move",
            "ide_extract_method",
            "ide_perform_mutation",
            "ide_diagnostics",
            "ide_apply_fix",
        } == names

    def test_call_tool_routes_arguments(self) -> None:
        gateway, _, log = _gateway((_instance(8765, "/home/dev/app"),))
        from idebridge.gateway.server import call_tool

        content = asyncio.run(
            call_tool(gateway, "ide_rename", {"file": "/home/dev/app/A.java", "line": 1, "column": 1, "new_name": "B"})
        )
        assert json.loads(content[0].text)["success"] is True
        assert log[0][2]["searchInComments"] is False

    def test_diagnostics_tool_fills_defaults(self) -> None:
        gateway, _, log = _gateway((_instance(8765, "/home/dev/app"),), reply={"success": True, "diagnostics": []})
        from idebridge.gateway.server import call_tool

        content = asyncio.run(call_tool(gateway, "ide_diagnostics", {"file": "/home/dev/app/A.java"}))
        assert json.loads(content[0].text)["report"] == "No diagnostics found"
        assert log[0][2] == {"file": "/home/dev/app/A.java", "limit": 100, "runInspections": False}

    def test_perform_mutation_with_string_target_is_invalid(self) -> None:
        gateway, _, log = _gateway((_instance(8765, "/home/dev/app"),))
        from idebridge.gateway.server import call_tool

        content = asyncio.run(
            call_tool(gateway, "ide_perform_mutation", {"operation": "rename", "target": "/home/dev/app/A.java"})
        )
        payload = json.loads(content[0].text)
        assert payload["code"] == "INVALID_ARGUMENT"
        assert log == []

    def test_unknown_tool(self) -> None:
        gateway, _, _ = _gateway(())
        from idebridge.gateway.server import call_tool

        content = asyncio.run(call_tool(gateway, "ide_inline", {}))
        payload = json.loads(content[0].text)
        assert payload["error_code"] == "UNKNOWN_TOOL"

    def test_missing_required_argument(self) -> None:
        gateway, _, _ = _gateway(())
        from idebridge.gateway.server import call_tool

        content = asyncio.run(call_tool(gateway, "ide_find_usages", {"file": "/a.java"}))
        assert json.loads(content[0].text)["error_code"] == "MISSING_ARGUMENT"


class TestInstanceClient:
    def test_transport_failure_is_unreachable(self) -> None:
        with patch(
            "idebridge.gateway.client.requests.post", side_effect=requests.ConnectionError("refused")
        ):
            result = InstanceClient("http://127.0.0.1:8765").post("/rename", {})
        assert result["code"] == "INSTANCE_UNREACHABLE"
        assert result["retryable"] is True

    def test_error_body_is_passed_through(self) -> None:
        response = MagicMock()
        response.status_code = 400
        response.json.return_value = {"success": False, "error": "Line 11 out of bounds (valid: 1-10)", "code": "OUT_OF_BOUNDS"}
        with patch("idebridge.gateway.client.requests.post", return_value=response) as post_mock:
            result = InstanceClient("http://127.0.0.1:8765/", timeout=5.0).post("/rename", {"line": 11})
        post_mock.assert_called_once_with("http://127.0.0.1:8765/rename", json={"line": 11}, timeout=5.0)
        assert result["code"] == "OUT_OF_BOUNDS"
