"""FastAPI app entrypoint for MediReport AI."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import Body, FastAPI, Header, HTTPException, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import HTMLResponse, JSONResponse

from medireport.api.ui import render_dashboard, render_prescription, render_report
from medireport.config.logging import configure_logging
from medireport.config.settings import Settings, get_settings
from medireport.dashboard import DashboardService
from medireport.flows.clients import build_clients
from medireport.flows.errors import (
    InputError,
    MediReportError,
    OutputValidationError,
    SchemaValidationError,
    UpstreamRejectedError,
    UpstreamTransientError,
    failure_kind,
    user_message,
)
from medireport.flows.registry import FlowSet, build_flows
from medireport.flows.retry import delay_for_attempt, policy_from_settings
from medireport.storage import RecordStore, build_store

logger = logging.getLogger(__name__)


def status_for(exc: MediReportError) -> int:
    if isinstance(exc, InputError):
        return 422
    if isinstance(exc, UpstreamTransientError):
        return 503
    if isinstance(exc, (UpstreamRejectedError, OutputValidationError)):
        return 502
    return 500


def error_body(exc: MediReportError) -> dict[str, Any]:
    issues = exc.issues if isinstance(exc, SchemaValidationError) else []
    return {
        "error": failure_kind(exc),
        "message": user_message(exc),
        "stage": exc.stage,
        "flow": exc.flow,
        "issues": [issue.as_dict() for issue in issues],
    }


def _install_runtime_state(
    app: FastAPI,
    *,
    settings: Settings,
    store: RecordStore,
    flows: FlowSet,
) -> None:
    app.state.settings = settings
    app.state.store = store
    app.state.flows = flows
    app.state.service = DashboardService(store=store, flows=flows)


def create_app(
    *,
    store: RecordStore | None = None,
    flows: FlowSet | None = None,
    settings_override: Settings | None = None,
) -> FastAPI:
    settings = settings_override or get_settings()
    policy = policy_from_settings(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(settings.log_level, json_format=settings.log_json)
        clients = None
        runtime_store = store or build_store(settings)
        try:
            runtime_flows = flows
            if runtime_flows is None:
                clients = build_clients(settings)
                runtime_flows = build_flows(clients, policy)
            await runtime_store.migrate()
            _install_runtime_state(
                app, settings=settings, store=runtime_store, flows=runtime_flows
            )
            logger.info(
                "api event=started env=%s flows=%s",
                settings.app_env,
                ",".join(runtime_flows.names()),
            )
            yield
        finally:
            if clients is not None:
                await clients.aclose()
            await runtime_store.aclose()

    injected = store is not None and flows is not None
    app = FastAPI(
        title=settings.app_name,
        debug=settings.app_debug,
        lifespan=None if injected else lifespan,
    )

    # Keep test paths reliable when lifespan is not executed by the client.
    if injected:
        _install_runtime_state(app, settings=settings, store=store, flows=flows)

    @app.exception_handler(MediReportError)
    async def handle_medireport_error(request: Request, exc: MediReportError) -> JSONResponse:
        status_code = status_for(exc)
        headers: dict[str, str] = {}
        if isinstance(exc, UpstreamTransientError):
            retry_after = delay_for_attempt(policy, policy.max_attempts)
            headers["Retry-After"] = str(max(1, int(retry_after)))
        log = logger.error if status_code >= 500 and status_code != 503 else logger.warning
        log(
            "api event=request_failed path=%s status=%d kind=%s stage=%s flow=%s",
            request.url.path,
            status_code,
            failure_kind(exc),
            exc.stage,
            exc.flow,
        )
        return JSONResponse(status_code=status_code, content=error_body(exc), headers=headers)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        error = InputError("request is malformed")
        body = error_body(error)
        body["issues"] = jsonable_encoder(
            [
                {
                    "field": ".".join(str(part) for part in item.get("loc", ())),
                    "message": str(item.get("msg", "")),
                    "kind": str(item.get("type", "")),
                }
                for item in exc.errors()
            ]
        )
        return JSONResponse(status_code=422, content=body)

    def _service(request: Request) -> DashboardService:
        return request.app.state.service

    def _owner(x_user_id: str | None, *, source: str = "X-User-Id header") -> str:
        owner = (x_user_id or "").strip()
        if not owner:
            raise HTTPException(status_code=401, detail=f"{source} is required")
        return owner

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok", "service": settings.app_name}

    @app.get("/", response_class=HTMLResponse)
    async def home(request: Request, user: str = Query(default="")) -> str:
        owner = _owner(user, source="user query parameter")
        service = _service(request)
        return render_dashboard(
            app_name=settings.app_name,
            user=owner,
            overview=await service.overview(owner),
            reports=await service.list_reports(owner),
            prescriptions=await service.list_prescriptions(owner),
            reminders=await service.list_reminders(owner),
        )

    @app.get("/reports/{report_id}/view", response_class=HTMLResponse)
    async def view_report(report_id: str, request: Request, user: str = Query(default="")) -> str:
        owner = _owner(user, source="user query parameter")
        report = await _service(request).get_report(owner, report_id)
        if report is None:
            raise HTTPException(status_code=404, detail="Report not found")
        return render_report(app_name=settings.app_name, user=owner, report=report)

    @app.get("/prescriptions/{prescription_id}/view", response_class=HTMLResponse)
    async def view_prescription(
        prescription_id: str, request: Request, user: str = Query(default="")
    ) -> str:
        owner = _owner(user, source="user query parameter")
        service = _service(request)
        prescription = await service.get_prescription(owner, prescription_id)
        if prescription is None:
            raise HTTPException(status_code=404, detail="Prescription not found")
        return render_prescription(
            app_name=settings.app_name,
            user=owner,
            prescription=prescription,
            reminders=await service.list_reminders(owner),
        )

    @app.post("/reports", status_code=201)
    async def create_report(
        request: Request,
        payload: dict[str, Any] = Body(...),
        x_user_id: str | None = Header(default=None),
    ) -> dict[str, Any]:
        return await _service(request).analyze_report(_owner(x_user_id), payload)

    @app.get("/reports")
    async def list_reports(
        request: Request, x_user_id: str | None = Header(default=None)
    ) -> dict[str, Any]:
        return {"reports": await _service(request).list_reports(_owner(x_user_id))}

    @app.get("/reports/{report_id}")
    async def get_report(
        report_id: str, request: Request, x_user_id: str | None = Header(default=None)
    ) -> dict[str, Any]:
        report = await _service(request).get_report(_owner(x_user_id), report_id)
        if report is None:
            raise HTTPException(status_code=404, detail="Report not found")
        return report

    @app.post("/prescriptions", status_code=201)
    async def create_prescription(
        request: Request,
        payload: dict[str, Any] = Body(...),
        x_user_id: str | None = Header(default=None),
    ) -> dict[str, Any]:
        return await _service(request).analyze_prescription(_owner(x_user_id), payload)

    @app.get("/prescriptions")
    async def list_prescriptions(
        request: Request, x_user_id: str | None = Header(default=None)
    ) -> dict[str, Any]:
        return {"prescriptions": await _service(request).list_prescriptions(_owner(x_user_id))}

    @app.get("/prescriptions/{prescription_id}")
    async def get_prescription(
        prescription_id: str, request: Request, x_user_id: str | None = Header(default=None)
    ) -> dict[str, Any]:
        prescription = await _service(request).get_prescription(_owner(x_user_id), prescription_id)
        if prescription is None:
            raise HTTPException(status_code=404, detail="Prescription not found")
        return prescription

    @app.post("/reminders", status_code=201)
    async def create_reminder(
        request: Request,
        payload: dict[str, Any] = Body(...),
        x_user_id: str | None = Header(default=None),
    ) -> dict[str, Any]:
        return await _service(request).create_reminder(_owner(x_user_id), payload)

    @app.get("/reminders")
    async def list_reminders(
        request: Request, x_user_id: str | None = Header(default=None)
    ) -> dict[str, Any]:
        return {"reminders": await _service(request).list_reminders(_owner(x_user_id))}

    @app.patch("/reminders/{reminder_id}")
    async def toggle_reminder(
        reminder_id: str,
        request: Request,
        payload: dict[str, Any] = Body(...),
        x_user_id: str | None = Header(default=None),
    ) -> dict[str, Any]:
        owner = _owner(x_user_id)
        enabled = payload.get("enabled")
        if not isinstance(enabled, bool):
            raise InputError("'enabled' must be a boolean")
        try:
            return await _service(request).set_reminder_enabled(owner, reminder_id, enabled)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail="Reminder not found") from exc

    @app.post("/chat")
    async def chat(
        request: Request,
        payload: dict[str, Any] = Body(...),
        x_user_id: str | None = Header(default=None),
    ) -> dict[str, str]:
        return {"reply": await _service(request).chat(_owner(x_user_id), payload)}

    @app.post("/assistant")
    async def assistant(
        request: Request,
        payload: dict[str, Any] = Body(...),
        x_user_id: str | None = Header(default=None),
    ) -> dict[str, str]:
        return {"reply": await _service(request).ask_assistant(_owner(x_user_id), payload)}

    @app.post("/pharmacies/nearby")
    async def nearby_pharmacies(
        request: Request,
        payload: dict[str, Any] = Body(...),
        x_user_id: str | None = Header(default=None),
    ) -> dict[str, Any]:
        return await _service(request).find_pharmacies(_owner(x_user_id), payload)

    @app.get("/overview")
    async def overview(
        request: Request, x_user_id: str | None = Header(default=None)
    ) -> dict[str, Any]:
        return await _service(request).overview(_owner(x_user_id))

    return app


app = create_app()
