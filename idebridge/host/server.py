"""HTTP interface of one instance (loopback only)."""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import Awaitable, Callable
from typing import Any

import uvicorn
from fastapi import FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from idebridge.core.config import HostConfig
from idebridge.core.constants import DEFAULT_DIAGNOSTICS_LIMIT
from idebridge.core.errors import OperationError
from idebridge.core.types import OperationResult
from idebridge.host.engine import MoveOptions, RenameOptions
from idebridge.host.handlers import RefactoringService

_host_log = logging.getLogger("idebridge.host")

_Call = Callable[[dict[str, Any]], OperationResult | dict[str, Any]]


def _require_int(body: dict[str, Any], key: str) -> int:
    value = body[key]
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"'{key}' must be an integer")
    return value


def _require_str(body: dict[str, Any], key: str) -> str:
    value = body[key]
    if not isinstance(value, str):
        raise ValueError(f"'{key}' must be a string")
    return value


def _optional_str(body: dict[str, Any], key: str) -> str | None:
    value = body.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError(f"'{key}' must be a string")
    return value or None


def _optional_bool(body: dict[str, Any], key: str) -> bool:
    value = body.get(key, False)
    if not isinstance(value, bool):
        raise ValueError(f"'{key}' must be a boolean")
    return value


def _optional_int(body: dict[str, Any], key: str, default: int) -> int:
    value = body.get(key)
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"'{key}' must be an integer")
    return value


def _optional_str_list(body: dict[str, Any], key: str) -> list[str] | None:
    value = body.get(key)
    if value is None:
        return None
    if isinstance(value, str):
        return [value]
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ValueError(f"'{key}' must be a list of strings")
    return value


def _error_response(error: OperationError) -> JSONResponse:
    return JSONResponse(status_code=400, content=error.to_dict())


def _result_response(result: OperationResult | dict[str, Any]) -> JSONResponse:
    payload = result.to_dict() if isinstance(result, OperationResult) else result
    return JSONResponse(status_code=200 if payload.get("success") else 400, content=payload)


async def _read_body(request: Request) -> dict[str, Any]:
    try:
        body = await request.json()
    except json.JSONDecodeError as e:
        raise ValueError(f"Request body is not valid JSON: {e.msg}") from e
    if not isinstance(body, dict):
        raise ValueError("Request body must be a JSON object")
    return body


async def _handle(
    name: str,
    request: Request,
    call: _Call,
) -> JSONResponse:
    try:
        body = await _read_body(request)
        _host_log.info("request endpoint=%s file=%s", name, body.get("file"), extra={"endpoint": name})
        result = await run_in_threadpool(call, body)
    except KeyError as e:
        return _error_response(
            OperationError.invalid_argument(f"Missing required argument: {e}", argument=str(e.args[0]))
        )
    except ValueError as e:
        return _error_response(OperationError.invalid_argument(str(e)))
    return _result_response(result)


def create_app(service: RefactoringService) -> FastAPI:
    app = FastAPI(title="idebridge host", version="1.0.0")

    @app.get("/status")
    async def status() -> dict[str, Any]:
        return await run_in_threadpool(service.status)

    def resolve(body: dict[str, Any]) -> dict[str, Any]:
        return service.resolve(
            _require_str(body, "file"),
            _require_int(body, "line"),
            _require_int(body, "column"),
            _optional_str(body, "project"),
        )

    def rename(body: dict[str, Any]) -> OperationResult:
        return service.rename(
            _require_str(body, "file"),
            _require_int(body, "line"),
            _require_int(body, "column"),
            _require_str(body, "newName"),
            RenameOptions(
                search_in_comments=_optional_bool(body, "searchInComments"),
                search_text_occurrences=_optional_bool(body, "searchTextOccurrences"),
            ),
            _optional_str(body, "project"),
        )

    def find_usages(body: dict[str, Any]) -> OperationResult:
        return service.find_usages(
            _require_str(body, "file"),
            _require_int(body, "line"),
            _require_int(body, "column"),
            _optional_str(body, "project"),
        )

    def move(body: dict[str, Any]) -> OperationResult:
        return service.move(
            _require_str(body, "file"),
            _require_int(body, "line"),
            _require_int(body, "column"),
            _require_str(body, "targetPackage"),
            MoveOptions(
                search_in_comments=_optional_bool(body, "searchInComments"),
                search_in_non_code_files=_optional_bool(body, "searchInNonJavaFiles"),
            ),
            _optional_str(body, "project"),
        )

    def extract_method(body: dict[str, Any]) -> OperationResult:
        return service.extract_method(
            _require_str(body, "file"),
            _require_int(body, "startLine"),
            _require_int(body, "startColumn"),
            _require_int(body, "endLine"),
            _require_int(body, "endColumn"),
            _require_str(body, "methodName"),
            _optional_str(body, "project"),
        )

    def diagnostics(body: dict[str, Any]) -> OperationResult:
        return service.diagnostics(
            _optional_str(body, "file"),
            _optional_str(body, "project"),
            _optional_str_list(body, "severity"),
            _optional_int(body, "limit", DEFAULT_DIAGNOSTICS_LIMIT),
            _optional_bool(body, "runInspections"),
        )

    def apply_fix(body: dict[str, Any]) -> OperationResult:
        return service.apply_fix(
            _require_str(body, "file"),
            _require_int(body, "line"),
            _require_int(body, "column"),
            _require_int(body, "fixId"),
            _optional_str(body, "diagnosticMessage"),
            _optional_str(body, "project"),
            _optional_bool(body, "runInspections"),
        )

    routes: dict[str, _Call] = {
        "/resolve": resolve,
        "/rename": rename,
        "/findUsages": find_usages,
        "/move": move,
        "/extractMethod": extract_method,
        "/diagnostics": diagnostics,
        "/applyFix": apply_fix,
    }
    for path, call in routes.items():
        app.add_api_route(path, _endpoint(path, call), methods=["POST"])

    return app


def _endpoint(
    path: str, call: _Call
) -> Callable[[Request], Awaitable[JSONResponse]]:
    async def endpoint(request: Request) -> JSONResponse:
        return await _handle(path.lstrip("/"), request, call)

    endpoint.__name__ = path.lstrip("/")
    return endpoint


def main_http(service: RefactoringService, config: HostConfig | None = None) -> None:
    """Serve ``service`` on the loopback interface until interrupted."""
    config = config or HostConfig.from_env()
    app = create_app(service)
    print(f"Starting idebridge host on {config.host}:{config.port}", file=sys.stderr)
    uvicorn.run(app, host=config.host, port=config.port, log_level="info")
