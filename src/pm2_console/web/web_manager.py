"""
Web Manager for the PM2 console.

This module provides a FastAPI-based web interface for the supervised processes:
an HTML process list and log viewer, plus REST API endpoints for listings,
log tails, lifecycle commands and deployment actions.
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import uvicorn
from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.responses import HTMLResponse, JSONResponse
from fastapi.templating import Jinja2Templates
from pydantic import ValidationError

from ..command.exceptions import ConsoleException, DirectoryUnavailableError, WebInterfaceError
from ..command.models import (
    ActionKind,
    ActionRequest,
    ErrorCode,
    LogFileDescriptor,
    LogKind,
    ProcessRecord,
    ProcessStatus,
)
from ..command.result_normalizer import to_response
from ..config import DashboardConfig
from ..service import DashboardService

# URL segment -> deployment action
DEPLOYMENT_ROUTES = {
    "git-pull": ActionKind.PULL_SOURCE,
    "npm-install": ActionKind.INSTALL_DEPENDENCIES,
    "npm-build": ActionKind.BUILD,
    "npm-deploy": ActionKind.DEPLOY,
}


class WebManager:
    """
    Web Manager providing the dashboard and its JSON API.

    - Web UI for process monitoring and log viewing
    - REST API endpoints for programmatic access
    - Lifecycle and deployment controls
    """

    def __init__(self, config: DashboardConfig) -> None:
        self._app = FastAPI(title="PM2 Console", description="Process Supervision Dashboard")
        self._config = config
        self._service: Optional[DashboardService] = None
        self._server: Optional[uvicorn.Server] = None
        self._logger = logging.getLogger(__name__)
        self._templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))
        self._setup_routes()

    @property
    def app(self) -> FastAPI:
        return self._app

    def initialize(self, service: DashboardService) -> None:
        """
        Initialize the Web Manager with the dashboard service.

        Args:
            service: The service all route handlers delegate to.
        """
        self._service = service
        self._logger.info("WebManager initialized successfully")

    def _setup_routes(self) -> None:
        """Setup FastAPI routes for web interface and API endpoints."""
        self._app.exception_handler(ConsoleException)(self._handle_console_exception)

        # Web UI routes
        self._app.get("/", response_class=HTMLResponse)(self._index)
        self._app.get("/logs/{process_name}/{log_type}", response_class=HTMLResponse)(
            self._log_view
        )

        # API routes
        self._app.get("/api/processes")(self._api_get_processes)
        self._app.get("/api/processes/{process_name}")(self._api_get_process_detail)
        self._app.get("/api/logs/{process_name}/{log_type}")(self._api_get_log)
        self._app.post("/api/processes/{process_name}/{action}")(self._api_lifecycle_action)
        for segment, action in DEPLOYMENT_ROUTES.items():
            self._app.post(f"/api/{segment}/{{process_name}}")(self._deployment_handler(action))

    def run(self, host: Optional[str] = None, port: Optional[int] = None, debug: bool = False) -> None:
        """
        Serve the app with Uvicorn until interrupted.

        Raises:
            WebInterfaceError: If the manager was not initialized.
        """
        if not self._service:
            raise WebInterfaceError("WebManager not initialized with a dashboard service")

        host = host or self._config.host
        port = self._config.port if port is None else port
        self._logger.debug(f"Try to run uvicorn server on {host}:{port} with debug: {debug}")
        config = uvicorn.Config(
            app=self._app,
            host=host,
            port=port,
            log_config=None,
            reload=False,
            access_log=debug,
        )
        self._server = uvicorn.Server(config)
        self._logger.info("PM2 console running on http://%s:%s", host, port)
        self._server.run()

    def shutdown(self) -> None:
        if self._server:
            self._server.should_exit = True
        self._service = None
        self._logger.info("WebManager shutdown completed")

    def _require_service(self) -> DashboardService:
        if not self._service:
            raise HTTPException(status_code=500, detail="WebManager not initialized")
        return self._service

    async def _handle_console_exception(self, request: Request, exc: ConsoleException):
        status = 404 if exc.code == ErrorCode.PROCESS_NOT_FOUND else 500
        if status == 500:
            self._logger.error("Request to %s failed: %s", request.url.path, exc.message)
        return JSONResponse(
            status_code=status,
            content={
                "success": False,
                "error": exc.code.value,
                "message": exc.message,
                "details": exc.details or None,
            },
        )

    # Request parsing helpers
    def _parse_log_type(self, log_type: str) -> LogKind:
        try:
            return LogKind(log_type)
        except ValueError:
            raise HTTPException(
                status_code=400,
                detail=f"Invalid log type: {log_type}. Must be one of {', '.join(k.value for k in LogKind)}",
            )

    def _parse_lines(self, raw: Optional[str]) -> int:
        if raw is None:
            return self._config.default_log_lines
        try:
            lines = int(raw)
        except ValueError:
            lines = None
        if lines not in self._config.allowed_log_lines:
            raise HTTPException(
                status_code=400,
                detail=f"Invalid lines: {raw}. Must be one of {', '.join(map(str, self._config.allowed_log_lines))}",
            )
        return lines

    # Web UI route handlers
    async def _index(self, request: Request):
        """Render the main process list page."""
        service = self._require_service()
        error = None
        processes: List[Dict[str, Any]] = []
        try:
            for record in await service.list_processes():
                descriptors = await service.get_log_descriptors(record.name)
                processes.append(self._record_to_dict(record, descriptors))
        except DirectoryUnavailableError as e:
            self._logger.error("Error listing processes: %s", e.message)
            error = e.message

        return self._templates.TemplateResponse(
            request,
            "process_list.html",
            {
                "processes": processes,
                "error": error,
                "online": ProcessStatus.ONLINE.value,
                "default_lines": self._config.default_log_lines,
            },
            status_code=500 if error else 200,
        )

    async def _log_view(self, request: Request, process_name: str, log_type: str, lines: Optional[str] = Query(None)):
        """Render the log viewer page."""
        service = self._require_service()
        log = await service.read_log(process_name, self._parse_log_type(log_type), self._parse_lines(lines))
        return self._templates.TemplateResponse(
            request,
            "log_viewer.html",
            {"log": log, "line_options": self._config.allowed_log_lines},
        )

    # API route handlers
    async def _api_get_processes(self):
        """API endpoint to get the process list."""
        processes = await self._require_service().list_processes()
        data = [self._record_to_dict(p) for p in processes]
        return {"success": True, "data": data, "count": len(data)}

    async def _api_get_process_detail(self, process_name: str):
        """API endpoint to get one process and its log files."""
        record, descriptors = await self._require_service().get_process_detail(process_name)
        return {"success": True, "data": self._record_to_dict(record, descriptors)}

    async def _api_get_log(self, process_name: str, log_type: str, lines: Optional[str] = Query(None)):
        """API endpoint to get a log tail."""
        log = await self._require_service().read_log(
            process_name, self._parse_log_type(log_type), self._parse_lines(lines)
        )
        return {
            "processName": log.process_name,
            "logType": log.kind.value,
            "fileName": log.file_name,
            "filePath": str(log.path) if log.path else None,
            "lines": log.lines,
            "exists": log.exists,
            "content": log.content,
        }

    async def _api_lifecycle_action(self, process_name: str, action: str):
        """API endpoint to start, stop or restart a process."""
        try:
            request = ActionRequest(process_name=process_name, action_kind=action)
        except ValidationError:
            request = None
        if request is None or not request.action_kind.is_lifecycle:
            return JSONResponse(
                status_code=400,
                content={
                    "success": False,
                    "processName": process_name,
                    "error": ErrorCode.INVALID_ACTION.value,
                    "message": "Invalid action. Use start, stop, or restart.",
                },
            )
        return await self._dispatch(request)

    def _deployment_handler(self, action: ActionKind):
        async def handler(process_name: str):
            return await self._dispatch(ActionRequest(process_name=process_name, action_kind=action))

        handler.__name__ = f"_api_{action.value}"
        handler.__doc__ = f"API endpoint to run {action.value} in a process's working directory."
        return handler

    async def _dispatch(self, request: ActionRequest) -> JSONResponse:
        outcome = await self._require_service().dispatch(request)
        status, body = to_response(outcome, request.process_name, request.action_kind)
        if not outcome.succeeded:
            self._logger.warning(
                "%s for %s failed: %s",
                request.action_kind.value,
                request.process_name,
                outcome.error_message,
            )
        return JSONResponse(status_code=status, content=body)

    # Utility methods
    def _record_to_dict(
        self, record: ProcessRecord, descriptors: Optional[List[LogFileDescriptor]] = None
    ) -> Dict[str, Any]:
        """Convert ProcessRecord to dictionary for JSON serialization."""
        data = record.model_dump(mode="json")
        data["memory_mb"] = record.memory_mb
        if descriptors is not None:
            data["log_files"] = [
                {"type": d.kind.value, "name": d.file_name, "path": str(d.path)}
                for d in descriptors
            ]
        return data


__all__ = ["WebManager", "DEPLOYMENT_ROUTES"]
