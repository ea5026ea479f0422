"""
FastAPI application for the bank statement reconciliation engine.
"""

import logging
import sys
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

import structlog
from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel

from .config import APP_BASE_PATH, Settings, get_settings
from .db import Database
from .exceptions import ErrorCode, ReconciliationError
from .ingestion.statement_parser import supported_formats
from .reconciliation import (
    AutoMatcher,
    ManualReconciliation,
    StatementImporter,
    export_matched_csv,
)
from .store import StatementStore
from .utils.audit_logger import AuditLogger

logger = structlog.get_logger()

IMPORT_ERROR_STATUS = {
    ErrorCode.DUPLICATE_FILE.value: 409,
    ErrorCode.NO_TRANSACTIONS_FOUND.value: 422,
    ErrorCode.IMPORT_ERROR.value: 500,
}


def setup_logging(settings: Optional[Settings] = None) -> None:
    """Configure logging to file and console."""
    settings = settings or get_settings()

    log_dir = APP_BASE_PATH / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "app.log"

    renderer = (
        structlog.processors.JSONRenderer()
        if settings.is_production
        else structlog.dev.ConsoleRenderer(colors=False)
    )
    formatter = structlog.stdlib.ProcessorFormatter(processor=renderer)

    handlers = [
        logging.StreamHandler(sys.stdout),
        logging.FileHandler(log_file, encoding="utf-8"),
    ]
    for handler in handlers:
        handler.setFormatter(formatter)

    # Configure standard logging
    logging.basicConfig(
        level=settings.app_log_level.upper(),
        handlers=handlers,
        force=True,
    )

    # Configure structlog to use standard logging
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


@dataclass
class Services:
    """Engine components bound to one database."""
    database: Database
    store: StatementStore
    matcher: AutoMatcher
    manual: ManualReconciliation
    importer: StatementImporter

    @classmethod
    def build(cls, database: Database, settings: Settings) -> "Services":
        audit = AuditLogger()
        store = StatementStore(database, audit=audit, settings=settings)
        matcher = AutoMatcher(database, audit=audit, store=store, settings=settings)
        return cls(
            database=database,
            store=store,
            matcher=matcher,
            manual=ManualReconciliation(database, audit=audit, store=store),
            importer=StatementImporter(database, store=store, matcher=matcher, settings=settings),
        )


# Request models
class ImportRequest(BaseModel):
    file_path: Optional[str] = None
    content: Optional[str] = None
    file_name: Optional[str] = None
    auto_reconcile: bool = True
    amount_tolerance: Optional[float] = None
    performed_by: Optional[str] = None


class ReconcileRequest(BaseModel):
    amount_tolerance: Optional[float] = None
    amount_tolerance_ratio: Optional[float] = None
    date_window_days: Optional[int] = None


class MatchRequest(BaseModel):
    transaction_id: int
    performed_by: Optional[str] = None


class ActorRequest(BaseModel):
    performed_by: Optional[str] = None


def create_app(
    database: Optional[Database] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    """
    Build the API.

    Args:
        database: Pre-built database (tests); created from settings at startup if omitted
        settings: Settings override
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting bank reconciliation API")
        if app.state.services is None:
            db = Database(settings=settings)
            db.create_tables()
            app.state.services = Services.build(db, settings)
        yield
        app.state.services.database.dispose()
        logger.info("Shutting down bank reconciliation API")

    app = FastAPI(
        title="Bank Reconciliation Engine",
        description="Bank statement import and reconciliation against recorded vouchers",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.services = Services.build(database, settings) if database is not None else None

    # CORS for the desktop front end
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[
            "http://localhost:3000",
            "http://localhost:5173",
            "http://127.0.0.1:3000",
        ],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ReconciliationError)
    async def reconciliation_error_handler(request: Request, exc: ReconciliationError):
        logger.info(
            "Request rejected",
            path=request.url.path,
            error=exc.code.value,
            status=exc.status_code,
        )
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    def services() -> Services:
        if app.state.services is None:
            raise HTTPException(503, "Service not initialized")
        return app.state.services

    # API Endpoints
    @app.get("/health")
    def health_check():
        """Health check endpoint."""
        return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}

    @app.get("/api/formats")
    def list_formats():
        return {"formats": supported_formats()}

    @app.post("/api/statements/import")
    def import_statement(request: ImportRequest):
        """Import a statement from a local path or inline text."""
        if request.file_path:
            result = services().importer.import_file(
                request.file_path,
                auto_reconcile=request.auto_reconcile,
                amount_tolerance=request.amount_tolerance,
                performed_by=request.performed_by,
            )
        elif request.content is not None:
            result = services().importer.import_content(
                request.content.encode("utf-8"),
                request.file_name or "statement.csv",
                auto_reconcile=request.auto_reconcile,
                amount_tolerance=request.amount_tolerance,
                performed_by=request.performed_by,
            )
        else:
            raise HTTPException(400, "Either file_path or content is required")

        if not result.success:
            return JSONResponse(
                status_code=IMPORT_ERROR_STATUS.get(result.error, 500),
                content=result.to_dict(),
            )
        return result.to_dict()

    @app.get("/api/statements")
    def list_statements(limit: int = Query(20, ge=1, le=500)):
        """Import history, most recent first."""
        statements = services().store.list_statements(limit=limit)
        return {"statements": [s.to_dict() for s in statements]}

    @app.get("/api/statements/{statement_id}")
    def get_statement(statement_id: int):
        return services().store.get_statement(statement_id).to_dict()

    @app.get("/api/statements/{statement_id}/status")
    def get_statement_status(statement_id: int):
        return services().store.get_reconciliation_status(statement_id).to_dict()

    @app.delete("/api/statements/{statement_id}")
    def delete_statement(statement_id: int, performed_by: Optional[str] = None):
        services().store.delete_statement(statement_id, performed_by=performed_by)
        return {"success": True, "statementId": statement_id}

    @app.post("/api/statements/{statement_id}/reconcile")
    def reconcile_statement(statement_id: int, request: Optional[ReconcileRequest] = None):
        """Run the auto-matcher over a statement's open lines."""
        request = request or ReconcileRequest()
        result = services().matcher.run(
            statement_id,
            amount_tolerance=request.amount_tolerance,
            amount_tolerance_ratio=request.amount_tolerance_ratio,
            date_window_days=request.date_window_days,
        )
        return result.to_dict()

    @app.get("/api/statements/{statement_id}/export")
    def export_statement(statement_id: int):
        """Export matched lines as CSV."""
        content = export_matched_csv(services().database, statement_id)
        return Response(
            content=content,
            media_type="text/csv",
            headers={
                "Content-Disposition": f'attachment; filename="statement_{statement_id}_matched.csv"'
            },
        )

    @app.get("/api/lines/unreconciled")
    def list_unreconciled(limit: int = Query(100, ge=1, le=1000)):
        lines = services().store.list_unreconciled_lines(limit=limit)
        return {"transactions": [line.to_dict() for line in lines]}

    @app.post("/api/lines/{line_id}/match")
    def match_line(line_id: int, request: MatchRequest):
        line = services().manual.match(line_id, request.transaction_id, request.performed_by)
        return {"success": True, "transaction": line.to_dict()}

    @app.post("/api/lines/{line_id}/unmatch")
    def unmatch_line(line_id: int, request: Optional[ActorRequest] = None):
        performed_by = request.performed_by if request else None
        line = services().manual.unmatch(line_id, performed_by)
        return {"success": True, "transaction": line.to_dict()}

    @app.post("/api/lines/{line_id}/ignore")
    def ignore_line(line_id: int, request: Optional[ActorRequest] = None):
        performed_by = request.performed_by if request else None
        line = services().manual.ignore(line_id, performed_by)
        return {"success": True, "transaction": line.to_dict()}

    @app.get("/api/lines/{line_id}/audit")
    def line_audit_trail(line_id: int):
        entries = services().manual.get_audit_trail(line_id)
        return {"entries": [e.to_dict() for e in entries]}

    return app


app = create_app()
