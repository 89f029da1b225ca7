"""FastAPI surface for reporting and action-center endpoints."""

from __future__ import annotations

import json
from typing import Any

import yaml

try:
    from fastapi import FastAPI, HTTPException, Request, Response
    from fastapi.middleware.cors import CORSMiddleware
    from fastapi.responses import JSONResponse
except Exception:  # pragma: no cover - optional dependency
    FastAPI = None  # type: ignore[assignment]
    HTTPException = RuntimeError  # type: ignore[assignment]
    Request = Any  # type: ignore[assignment]
    Response = Any  # type: ignore[assignment]
    CORSMiddleware = None  # type: ignore[assignment]
    JSONResponse = Any  # type: ignore[assignment]

from sporeops.actions.types import ActionCenterError, LOG_ENTRY_TYPES as ACTION_LOG_ENTRY_TYPES
from sporeops.core.clock import parse_timestamp
from sporeops.reporting.types import (
    LOG_ENTRY_TYPES as REPORT_LOG_ENTRY_TYPES,
    REPORT_FORMATS,
    ReportAccessError,
    ReportNotFoundError,
    ReportingError,
)


DEFAULT_API_CORS_ALLOW_ORIGINS = ["http://127.0.0.1:3000", "http://localhost:3000"]
LIFECYCLE_STATUS_CODES = {"not_found": 404, "forbidden": 403, "invalid_transition": 409}
MUTATION_METHODS = {"POST", "PUT", "PATCH", "DELETE"}


def create_app(orchestrator: Any) -> Any:
    if FastAPI is None:
        raise RuntimeError("FastAPI is not installed. Install with: pip install 'sporeops[api]'")

    api_config = getattr(orchestrator.config, "api", None)
    docs_enabled = bool(getattr(api_config, "docs_enabled", False))
    cors_allow_origins = [
        str(item).strip() for item in getattr(api_config, "cors_allow_origins", DEFAULT_API_CORS_ALLOW_ORIGINS)
    ]
    cors_allow_origins = [item for item in cors_allow_origins if item] or list(DEFAULT_API_CORS_ALLOW_ORIGINS)
    max_request_body_bytes = max(1024, int(getattr(api_config, "max_request_body_bytes", 1048576)))

    app = FastAPI(
        title="sporeops API",
        version="0.1.0",
        docs_url="/docs" if docs_enabled else None,
        redoc_url="/redoc" if docs_enabled else None,
        openapi_url="/openapi.json" if docs_enabled else None,
    )
    if CORSMiddleware is not None:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=cors_allow_origins,
            allow_credentials=False,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    async def _request_body_too_large(request: Request) -> bool:
        if request.method.upper() not in MUTATION_METHODS:
            return False
        raw_content_length = request.headers.get("content-length")
        if raw_content_length is not None:
            try:
                content_length = int(raw_content_length)
            except ValueError:
                content_length = -1
            if content_length > max_request_body_bytes:
                return True
            if content_length >= 0:
                return False
        body = await request.body()
        return len(body) > max_request_body_bytes

    async def _read_payload(request: Request) -> dict[str, Any]:
        content_type = str(request.headers.get("content-type", "")).lower()
        try:
            if "application/json" in content_type:
                payload = await request.json()
            else:
                raw = await request.body()
                if not raw:
                    payload = {}
                else:
                    text = raw.decode("utf-8")
                    if "application/yaml" in content_type or "text/yaml" in content_type:
                        payload = yaml.safe_load(text)
                    else:
                        try:
                            payload = json.loads(text)
                        except json.JSONDecodeError:
                            payload = yaml.safe_load(text)
        except (ValueError, yaml.YAMLError) as exc:
            raise HTTPException(status_code=400, detail="request body is not valid JSON or YAML") from exc
        if payload is None:
            payload = {}
        if not isinstance(payload, dict):
            raise HTTPException(status_code=400, detail="request payload must be an object")
        return payload

    def _action_engine(tenant_id: str) -> Any:
        try:
            return orchestrator.action_engine(tenant_id)
        except ActionCenterError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc

    def _parse_window(start: str | None, end: str | None) -> tuple[Any, Any]:
        start_at = parse_timestamp(start) if start else None
        end_at = parse_timestamp(end) if end else None
        if (start and start_at is None) or (end and end_at is None):
            raise HTTPException(status_code=400, detail="start and end must be ISO-8601 timestamps")
        return start_at, end_at

    @app.middleware("http")
    async def body_limit_middleware(request: Request, call_next: Any) -> Response:
        if await _request_body_too_large(request):
            return JSONResponse(status_code=413, content={"detail": "request body too large"})
        return await call_next(request)

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/status")
    def status() -> dict[str, Any]:
        return orchestrator.status()

    @app.post("/reports")
    async def generate_report(request: Request) -> dict[str, Any]:
        payload = await _read_payload(request)
        try:
            result = orchestrator.run_report(payload)
        except ReportingError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        if not result.success:
            denied = result.decision is not None and not result.decision.allowed
            raise HTTPException(status_code=403 if denied else 500, detail=result.error)
        return result.to_dict()

    @app.post("/reports/{bundle_id}/export")
    async def export_report(bundle_id: str, request: Request, format: str = "markdown") -> Response:
        if format not in REPORT_FORMATS:
            raise HTTPException(status_code=400, detail=f"format must be one of: {', '.join(REPORT_FORMATS)}")
        payload = await _read_payload(request)
        try:
            exported = orchestrator.reexport_report(bundle_id, format, payload)
        except ReportNotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        except ReportAccessError as exc:
            raise HTTPException(status_code=403, detail=str(exc)) from exc
        except ReportingError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return JSONResponse(
            content={
                "format": exported.format,
                "filename": exported.filename,
                "size_bytes": exported.size_bytes,
                "content": exported.content,
            }
        )

    @app.get("/reports/log")
    def report_log(
        entry_type: str | None = None,
        tenant_id: str | None = None,
        start: str | None = None,
        end: str | None = None,
        limit: int = 100,
        format: str = "json",
    ) -> Response:
        if entry_type is not None and entry_type not in REPORT_LOG_ENTRY_TYPES:
            raise HTTPException(status_code=400, detail=f"unknown entry_type '{entry_type}'")
        if format not in {"json", "csv"}:
            raise HTTPException(status_code=400, detail="format must be json or csv")
        start_at, end_at = _parse_window(start, end)
        filters = {
            "entry_type": entry_type,
            "tenant_id": tenant_id,
            "start": start_at,
            "end": end_at,
            "limit": max(1, min(int(limit), 5000)),
        }
        log = orchestrator.reporting.log
        if format == "csv":
            return Response(content=log.export_csv(**filters), media_type="text/csv")
        return JSONResponse(content={"entries": [entry.to_dict() for entry in log.get_entries(**filters)]})

    @app.get("/reports/statistics")
    def report_statistics() -> dict[str, Any]:
        return orchestrator.reporting.statistics().to_dict()

    @app.post("/actions/query")
    async def action_query(request: Request) -> dict[str, Any]:
        payload = await _read_payload(request)
        try:
            response = orchestrator.run_action_query(payload)
        except ActionCenterError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        result = response["result"]
        if not result["success"]:
            decision = result.get("decision") or {}
            denied = not decision.get("authorized", True)
            raise HTTPException(status_code=403 if denied else 500, detail=result["error"])
        return response

    @app.post("/actions/{tenant_id}/tasks/{task_id}/{operation}")
    async def action_lifecycle(tenant_id: str, task_id: str, operation: str, request: Request) -> dict[str, Any]:
        payload = await _read_payload(request)
        _action_engine(tenant_id)
        try:
            outcome = orchestrator.apply_action_operation(tenant_id, task_id, operation, payload)
        except ActionCenterError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        if not outcome.success:
            raise HTTPException(
                status_code=LIFECYCLE_STATUS_CODES.get(outcome.error_code or "", 400),
                detail=outcome.error,
            )
        return outcome.to_dict()

    @app.get("/actions/{tenant_id}/statistics")
    def action_statistics(tenant_id: str) -> dict[str, Any]:
        return _action_engine(tenant_id).statistics()

    @app.get("/actions/{tenant_id}/policy")
    def action_policy(tenant_id: str) -> dict[str, Any]:
        return _action_engine(tenant_id).policy_statistics()

    @app.get("/actions/{tenant_id}/log")
    def action_log(
        tenant_id: str,
        entry_type: str | None = None,
        performed_by: str | None = None,
        start: str | None = None,
        end: str | None = None,
        failures_only: bool = False,
    ) -> dict[str, Any]:
        if entry_type is not None and entry_type not in ACTION_LOG_ENTRY_TYPES:
            raise HTTPException(status_code=400, detail=f"unknown entry_type '{entry_type}'")
        start_at, end_at = _parse_window(start, end)
        return _action_engine(tenant_id).log.export(
            start=start_at,
            end=end_at,
            entry_types=[entry_type] if entry_type else None,
            performed_by=performed_by,
            failure_only=failures_only,
        )

    @app.post("/maintenance/prune")
    def prune() -> dict[str, Any]:
        return orchestrator.prune_logs()

    return app
