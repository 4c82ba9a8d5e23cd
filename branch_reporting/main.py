"""
FastAPI application for the branch balance reporting service.

Every long-running operation is accepted with a job id and executed as a
background task; clients poll the matching status endpoint.
"""

import asyncio
import logging
import sys
from contextlib import asynccontextmanager, suppress
from datetime import date, datetime, timezone
from decimal import Decimal
from pathlib import Path, PurePath
from typing import List, Optional
from uuid import uuid4

import structlog
from fastapi import APIRouter, BackgroundTasks, FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.engine import make_url
from starlette.background import BackgroundTask

from . import __version__
from .config import Settings, get_settings
from .jobs import (
    CommitJob,
    ExportJob,
    InMemoryJobStore,
    ValidationJob,
    run_janitor,
    submit_job,
)
from .ledger import Database, SqlLedger
from .models import Job, JobKind, JobStatus, ValidatedRow
from .reporting import PivotReportGenerator, ReportWorkbookRenderer

logger = structlog.get_logger()

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
NOT_FOUND_BODY = {"status": JobStatus.FAILED.value, "message": "Job not found or expired"}


def setup_logging(settings: Settings) -> None:
    """Configure stdlib logging handlers and route structlog through them."""
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if settings.log_file:
        settings.log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(settings.log_file, encoding="utf-8"))

    renderer = (
        structlog.processors.JSONRenderer()
        if settings.is_production
        else structlog.dev.ConsoleRenderer(colors=False)
    )
    formatter = structlog.stdlib.ProcessorFormatter(processor=renderer)
    for handler in handlers:
        handler.setFormatter(formatter)

    logging.basicConfig(
        level=settings.app_log_level.upper(),
        format="%(message)s",
        handlers=handlers,
        force=True,
    )

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


# Request/Response models
class ValidatedRowIn(BaseModel):
    """A validated row exactly as the import status endpoint returns it."""
    row_number: int = 0
    cif: str
    client_name: str = ""
    account_number: str
    account_id: int
    subject_id: int
    subject_name: str = ""
    previous_balance: Decimal = Field(default=Decimal("0"), ge=0)
    current_balance: Decimal = Field(ge=0)
    available_balance: Optional[Decimal] = Field(default=None, ge=0)
    changed: Optional[bool] = None
    warning: Optional[str] = None

    def to_row(self) -> ValidatedRow:
        return ValidatedRow.from_dict(self.model_dump())


class CommitRequest(BaseModel):
    valid_rows: List[ValidatedRowIn]
    report_date: date


class ExportRequest(BaseModel):
    subject_ids: List[int] = Field(default_factory=list)
    start_date: date
    end_date: date
    baseline_year: int = Field(ge=2000, le=2100)


class JobResponse(BaseModel):
    job_id: str
    status: str
    message: str


def _sqlite_parent(database_url: str) -> Optional[Path]:
    url = make_url(database_url)
    if url.get_backend_name() != "sqlite" or not url.database or url.database == ":memory:":
        return None
    return Path(url.database).parent


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    settings: Settings = app.state.settings
    logger.info("Starting branch reporting API", env=settings.app_env)

    settings.upload_dir.mkdir(parents=True, exist_ok=True)
    settings.reports_dir.mkdir(parents=True, exist_ok=True)
    db_dir = _sqlite_parent(settings.database_url)
    if db_dir is not None:
        db_dir.mkdir(parents=True, exist_ok=True)
    app.state.database.create_all()

    janitor = asyncio.create_task(run_janitor(app.state.store, settings.janitor_interval_seconds))
    yield
    janitor.cancel()
    with suppress(asyncio.CancelledError):
        await janitor
    app.state.database.dispose()
    logger.info("Shutting down branch reporting API")


router = APIRouter()


def _find_job(request: Request, job_id: str, kind: JobKind) -> Optional[Job]:
    job = request.app.state.store.get(job_id)
    if job is None or job.kind != kind:
        return None
    return job


def _accepted(job: Job) -> JobResponse:
    return JobResponse(job_id=job.id, status=job.status.value, message=job.message)


@router.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}


@router.post("/api/imports", response_model=JobResponse, status_code=202)
async def submit_import(
    request: Request,
    background_tasks: BackgroundTasks,
    file: UploadFile = File(...),
    report_date: date = Form(...),
):
    """Store an uploaded balance sheet and start validating it."""
    state = request.app.state
    settings: Settings = state.settings

    filename = file.filename or "upload"
    settings.upload_dir.mkdir(parents=True, exist_ok=True)
    source_path = settings.upload_dir / f"{uuid4().hex}{PurePath(filename).suffix.lower()}"
    source_path.write_bytes(await file.read())

    job = submit_job(
        state.store,
        JobKind.VALIDATION,
        settings.job_ttl_seconds,
        message="File received. Validation in progress.",
        clock=state.store.now,
    )
    background_tasks.add_task(state.validation_job.run, job.id, source_path, filename, report_date)

    logger.info("Import accepted", job_id=job.id, filename=filename, report_date=report_date.isoformat())
    return _accepted(job)


@router.get("/api/imports/{job_id}/status")
async def import_status(job_id: str, request: Request):
    """Get validation progress and, once completed, the preview payload."""
    job = _find_job(request, job_id, JobKind.VALIDATION)
    if job is None:
        return JSONResponse(status_code=404, content=NOT_FOUND_BODY)

    body = {"job_id": job.id, "status": job.status.value, "message": job.message}
    if job.status == JobStatus.COMPLETED:
        body["data"] = job.payload
    return body


@router.post("/api/imports/commit", response_model=JobResponse, status_code=202)
async def submit_commit(body: CommitRequest, request: Request, background_tasks: BackgroundTasks):
    """Start saving previously validated rows."""
    state = request.app.state
    rows = [row.to_row() for row in body.valid_rows]

    job = submit_job(
        state.store,
        JobKind.COMMIT,
        state.settings.job_ttl_seconds,
        message=f"Saving {len(rows)} rows.",
        clock=state.store.now,
    )
    background_tasks.add_task(state.commit_job.run, job.id, rows, body.report_date)

    logger.info("Commit accepted", job_id=job.id, rows=len(rows), report_date=body.report_date.isoformat())
    return _accepted(job)


@router.get("/api/imports/commit/{job_id}/status")
async def commit_status(job_id: str, request: Request):
    job = _find_job(request, job_id, JobKind.COMMIT)
    if job is None:
        return JSONResponse(status_code=404, content=NOT_FOUND_BODY)

    body = {"job_id": job.id, "status": job.status.value, "message": job.message}
    if "processed_count" in job.payload:
        body["processed_count"] = job.payload["processed_count"]
    return body


@router.post("/api/exports", response_model=JobResponse, status_code=202)
async def submit_export(body: ExportRequest, request: Request, background_tasks: BackgroundTasks):
    """Start building a balance performance report."""
    state = request.app.state

    job = submit_job(
        state.store,
        JobKind.EXPORT,
        state.settings.job_ttl_seconds,
        message="Report generation in progress.",
        clock=state.store.now,
    )
    background_tasks.add_task(
        state.export_job.run,
        job.id,
        body.subject_ids,
        body.start_date,
        body.end_date,
        body.baseline_year,
    )

    logger.info("Export accepted", job_id=job.id, subjects=len(body.subject_ids))
    return _accepted(job)


@router.get("/api/exports/{job_id}/status")
async def export_status(job_id: str, request: Request):
    job = _find_job(request, job_id, JobKind.EXPORT)
    if job is None:
        return JSONResponse(status_code=404, content=NOT_FOUND_BODY)

    body = {"job_id": job.id, "status": job.status.value, "message": job.message}
    if job.status == JobStatus.COMPLETED:
        for key in ("file_path", "file_name", "skipped_subject_ids"):
            body[key] = job.payload.get(key)
    return body


@router.get("/api/exports/{job_id}/download")
async def download_export(job_id: str, request: Request):
    """Stream a finished report."""
    state = request.app.state
    settings: Settings = state.settings

    job = _find_job(request, job_id, JobKind.EXPORT)
    if job is None or job.status != JobStatus.COMPLETED:
        raise HTTPException(404, "Report not found or not ready")

    path = Path(job.payload["file_path"]).resolve()
    if not path.is_relative_to(settings.reports_dir.resolve()):
        logger.warning("Report path outside reports directory", job_id=job_id, path=str(path))
        raise HTTPException(403, "Access to this file is not allowed")
    if not path.is_file():
        raise HTTPException(404, "Report file no longer exists")

    background = BackgroundTask(state.store.evict, job_id) if settings.evict_on_download else None
    return FileResponse(
        path,
        media_type=XLSX_MEDIA_TYPE,
        filename=job.payload["file_name"],
        background=background,
    )


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the application and its collaborators."""
    settings = settings or get_settings()
    setup_logging(settings)

    app = FastAPI(
        title="Branch Balance Reporting",
        description="Daily balance import, reconciliation and performance reports",
        version=__version__,
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    database = Database(settings.database_url, echo=settings.app_debug)
    ledger = SqlLedger(database, retry_attempts=settings.commit_retry_attempts)
    store = InMemoryJobStore()

    app.state.settings = settings
    app.state.database = database
    app.state.ledger = ledger
    app.state.store = store
    app.state.validation_job = ValidationJob(store, ledger)
    app.state.commit_job = CommitJob(store, ledger)
    app.state.export_job = ExportJob(
        store,
        PivotReportGenerator(
            ledger,
            display_divisor=settings.display_divisor,
            default_role=settings.default_role,
            default_org_unit=settings.default_org_unit,
        ),
        ReportWorkbookRenderer(title=settings.report_title),
        settings.reports_dir,
        clock=store.now,
    )

    app.include_router(router)
    return app


app = create_app()
