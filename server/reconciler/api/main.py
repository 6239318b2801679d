from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger
import sys
from contextlib import asynccontextmanager

from ..config import settings
from ..models.schemas import (
    APIResponse,
    RecordsRequest,
    RecordRequest,
    AutoMergeRequest,
    ManualMergeRequest,
    FinalizeMergeRequest,
    BatchRequest,
)
from ..agents.verification_agents import VerificationOrchestrator
from ..services.duplicate_detector import detect_duplicates
from ..services.issue_scanner import find_issues
from ..services.enrichment_cascade import EnrichmentCascade
from ..services.merge_engine import auto_merge, manual_merge, finalize_merge
from ..services.batch_runner import batch_runner
from ..utils.api_clients import CrossRefClient, OpenAlexClient
from ..utils.errors import VersionConflictError, NetworkError
from ..utils.llm_client import LLMClient
from ..utils.record_store import ZoteroRecordStore

logger.remove()

# Console logging
logger.add(
    sys.stdout,
    level=settings.log_level,
    format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)

# File logging
logger.add(
    "logs/reconciler.log",
    level=settings.log_level,
    format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}",
    rotation="10 MB",
    retention="7 days",
    compression="zip"
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    global llm_client, cascade, orchestrator, record_store

    logger.info("Starting Bibliographic Reconciliation API")

    try:
        llm_client = LLMClient()
        cascade = EnrichmentCascade(crossref=CrossRefClient(), openalex=OpenAlexClient(), llm_client=llm_client)
        logger.info("✅ Enrichment cascade initialized")

        orchestrator = VerificationOrchestrator(llm_client, cascade)
        logger.info("✅ Verification orchestrator initialized")

        if settings.zotero_configured:
            record_store = ZoteroRecordStore()
            logger.info(f"✅ Zotero record store initialized ({settings.zotero_library_type} {settings.zotero_library_id})")
        else:
            logger.warning("⚠️ Zotero not configured, merge finalization disabled")

        logger.info("🎉 All services initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize services: {str(e)}")
        raise

    yield

    logger.info("Shutting down Bibliographic Reconciliation API")


app = FastAPI(
    title="Bibliographic Reconciliation API",
    description="API for detecting duplicates, merging, enriching and verifying bibliographic records",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

llm_client = None
cascade = None
orchestrator = None
record_store = None


def _require_engine():
    if cascade is None or orchestrator is None:
        raise HTTPException(status_code=500, detail="Services not initialized")


@app.get("/")
async def root():
    return APIResponse(
        success=True,
        message="Bibliographic Reconciliation API is running",
        data={
            "version": "1.0.0",
            "description": "API for reconciling bibliographic records against Crossref and OpenAlex",
            "endpoints": [
                "/",
                "/health",
                "/duplicates/detect",
                "/issues/scan",
                "/enrich",
                "/merge/auto",
                "/merge/manual",
                "/merge/finalize",
                "/verify",
                "/verify-batch-async",
                "/job-status/{job_id}"
            ]
        }
    )


@app.get("/health")
async def health_check():
    return APIResponse(
        success=True,
        message="API is healthy",
        data={
            "status": "healthy",
            "services_initialized": cascade is not None and orchestrator is not None,
            "record_store_configured": record_store is not None,
            "active_jobs": batch_runner.get_active_job_count(),
            "tracked_jobs": batch_runner.get_job_count(),
            "sources": cascade.source_status() if cascade is not None else {}
        }
    )


@app.post("/duplicates/detect", response_model=APIResponse)
async def detect(request: RecordsRequest):
    groups = detect_duplicates(request.records)
    return APIResponse(
        success=True,
        message=f"Found {len(groups)} duplicate groups",
        data=groups
    )


@app.post("/issues/scan", response_model=APIResponse)
async def scan_issues(request: RecordsRequest):
    flagged = find_issues(request.records)
    return APIResponse(
        success=True,
        message=f"{len(flagged)} records need attention",
        data=flagged
    )


@app.post("/enrich", response_model=APIResponse)
async def enrich(request: RecordRequest):
    _require_engine()
    patch = await cascade.enrich(request.record)
    return APIResponse(
        success=True,
        message=f"Enriched from {patch.strategy}" if patch else "No source returned metadata",
        data=patch
    )


@app.post("/merge/auto", response_model=APIResponse)
async def merge_auto(request: AutoMergeRequest):
    _require_engine()
    patch = await auto_merge(request.group, cascade if request.enrich else None)
    return APIResponse(success=True, message="Merge draft created", data=patch)


@app.post("/merge/manual", response_model=APIResponse)
async def merge_manual(request: ManualMergeRequest):
    _require_engine()
    try:
        patch = await manual_merge(request.group, request.selections, cascade if request.enrich else None)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return APIResponse(success=True, message="Merge draft created", data=patch)


@app.post("/merge/finalize", response_model=APIResponse)
async def merge_finalize(request: FinalizeMergeRequest):
    if record_store is None:
        raise HTTPException(status_code=503, detail="Zotero record store not configured")

    try:
        outcome = await finalize_merge(record_store, request.group, request.patch, request.master_index)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except VersionConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except NetworkError as e:
        logger.error(f"Merge finalization failed for {request.group.id}: {str(e)}")
        raise HTTPException(status_code=502, detail=str(e))

    return APIResponse(
        success=True,
        message=f"Merged {len(request.group.members)} records into {outcome.master.key}",
        data=outcome
    )


@app.post("/verify", response_model=APIResponse)
async def verify(request: RecordRequest):
    _require_engine()
    report = await orchestrator.run_verification(request.record)
    return APIResponse(
        success=True,
        message=f"Verification finished: {report.overall_status}",
        data=report
    )


@app.post("/verify-batch-async", response_model=APIResponse)
async def verify_batch_async(request: BatchRequest):
    """Start a batch job - returns the job ID immediately"""
    _require_engine()
    if request.operation == "verify":
        worker = orchestrator.run_verification
    elif request.operation == "enrich":
        worker = cascade.enrich
    else:
        raise HTTPException(status_code=400, detail=f"Unsupported operation: {request.operation}")

    job_id = batch_runner.create_job(request.operation, len(request.records))
    batch_runner.start(job_id, request.records, worker, request.delay)

    return APIResponse(
        success=True,
        message="Batch started",
        data={"job_id": job_id, "status": "pending", "total": len(request.records)}
    )


@app.get("/job-status/{job_id}")
async def get_job_status(job_id: str):
    """Get job status by ID"""
    job = batch_runner.get_job(job_id)
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")

    return APIResponse(
        success=True,
        message="Job status retrieved",
        data=job
    )


@app.post("/jobs/{job_id}/cancel")
async def cancel_job(job_id: str):
    if not batch_runner.get_job(job_id):
        raise HTTPException(status_code=404, detail="Job not found")

    cancelled = batch_runner.request_cancel(job_id)
    return APIResponse(
        success=cancelled,
        message="Cancellation requested" if cancelled else "Job already finished",
        data=batch_runner.get_job(job_id)
    )
