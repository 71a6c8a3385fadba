"""
FastAPI backend for the KYC batch verifier.
Provides REST API endpoints for upload, processing, cancellation, review and export.
"""

import logging
import threading
from contextlib import asynccontextmanager
from pathlib import Path
from typing import List, Optional, Dict, Any
from datetime import datetime, timedelta

import httpx
from fastapi import FastAPI, UploadFile, File, Form, HTTPException, BackgroundTasks, Request
from fastapi.responses import FileResponse
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from config import KycSettings, app_config, load_settings
from models import (
    AuthError,
    CanonicalField,
    IdentifierType,
    KycError,
    MissingColumnsError,
    UploadRejectedError,
)
from ingestion import SheetData, build_column_map, check_upload, read_spreadsheet
from pipeline import (
    BatchOrchestrator,
    InMemoryOutcomeStore,
    OutcomeStore,
    next_batch_id,
    status_counts,
    to_display_row,
    verification_stats,
)
from security import FieldCipher
from export import write_excel

# Configure logging
logging.basicConfig(
    level=getattr(logging, app_config.log_level),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


# Response models
class UploadResponse(BaseModel):
    batch_id: str
    filename: str
    identifier_type: str
    total_rows: int
    status: str


class BatchStatus(BaseModel):
    batch_id: str
    filename: str
    identifier_type: str
    status: str  # uploaded, processing, completed, cancelled, failed
    total_rows: int
    processed: int
    summary: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


class SingleVerificationRequest(BaseModel):
    identifier_type: str = IdentifierType.PAN.value
    identifier: str
    name: str
    date_of_birth: Optional[str] = None
    gender: Optional[str] = None
    reason: Optional[str] = None


def _known_batch_ids(state) -> List[str]:
    """Ids in use or once used; none of them may be handed out again."""
    return list(state.batches) + state.store.batch_ids() + list(state.retired_ids)


def _timeframe_start(timeframe: str, now: datetime) -> Optional[datetime]:
    """Start of the stats window; week starts on Sunday."""
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    if timeframe == "all":
        return None
    if timeframe == "month":
        return midnight.replace(day=1)
    if timeframe == "week":
        return midnight - timedelta(days=(now.weekday() + 1) % 7)
    raise HTTPException(status_code=400, detail=f"Unknown timeframe: {timeframe}")


def _status(batch_id: str, batch: Dict[str, Any]) -> BatchStatus:
    result = batch.get("result")
    return BatchStatus(
        batch_id=batch_id,
        filename=batch["filename"],
        identifier_type=batch["identifier_type"].value,
        status=batch["status"],
        total_rows=batch["sheet"].total_rows,
        processed=batch["processed"],
        summary=result.summary.model_dump(mode="json") if result else None,
        error=batch.get("error"),
    )


def create_app(
    settings: Optional[KycSettings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    store: Optional[OutcomeStore] = None,
) -> FastAPI:
    """
    Build the API application.

    Settings are loaded from the environment at startup when not supplied;
    missing provider credentials or cipher passphrase stop the server from
    starting.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        loaded = settings or load_settings()
        app.state.settings = loaded
        app.state.cipher = FieldCipher.from_config(loaded.cipher)
        app.state.store = store if store is not None else InMemoryOutcomeStore()
        app.state.transport = transport
        app.state.batches = {}
        app.state.retired_ids = set()
        app_config.ensure_directories()
        logger.info(f"KYC verifier ready (mode={loaded.policy.mode.value}, "
                    f"concurrency={loaded.policy.concurrency})")
        yield

    app = FastAPI(
        title="KYC Batch Verifier API",
        description="API for verifying PAN and Aadhaar records uploaded as Excel spreadsheets",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    def get_batch(request: Request, batch_id: str) -> Dict[str, Any]:
        batches = request.app.state.batches
        if batch_id not in batches:
            raise HTTPException(status_code=404, detail="Batch not found")
        return batches[batch_id]

    @app.get("/")
    async def root():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "service": "KYC Batch Verifier",
            "version": "1.0.0"
        }

    @app.get("/health")
    async def health_check(request: Request):
        """Detailed health check."""
        state = request.app.state
        return {
            "status": "healthy",
            "active_batches": len(state.batches),
            "mode": state.settings.policy.mode.value,
            "output_dir": str(app_config.output_dir),
        }

    @app.post("/upload")
    async def upload_file(
        request: Request,
        file: UploadFile = File(...),
        identifier_type: str = Form(IdentifierType.PAN.value),
    ) -> UploadResponse:
        """
        Upload an Excel file of identity records.

        Args:
            file: .xlsx or .xls spreadsheet, first sheet is read
            identifier_type: "pan" or "aadhaar"

        Returns:
            UploadResponse with the batch id
        """
        try:
            id_type = IdentifierType(identifier_type.lower())
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Unknown identifier type: {identifier_type}")

        content = await file.read()
        try:
            check_upload(file.filename, len(content))
            sheet = read_spreadsheet(content, filename=file.filename)
            column_map = build_column_map(sheet.headers, id_type)
            if column_map.missing:
                raise MissingColumnsError([f.value for f in column_map.missing], sheet.headers)
        except MissingColumnsError as e:
            raise HTTPException(
                status_code=400,
                detail={"message": str(e), "missing": e.missing, "found": e.found},
            )
        except UploadRejectedError as e:
            raise HTTPException(status_code=400, detail=str(e))

        state = request.app.state
        batch_id = next_batch_id(file.filename, _known_batch_ids(state))
        state.batches[batch_id] = {
            "filename": file.filename,
            "identifier_type": id_type,
            "sheet": sheet,
            "status": "uploaded",
            "processed": 0,
            "result": None,
            "error": None,
            "cancel_event": threading.Event(),
            "created_at": datetime.now().isoformat(),
        }
        logger.info(f"Uploaded {file.filename} as batch {batch_id} ({sheet.total_rows} rows)")

        return UploadResponse(
            batch_id=batch_id,
            filename=file.filename,
            identifier_type=id_type.value,
            total_rows=sheet.total_rows,
            status="uploaded",
        )

    @app.post("/process/{batch_id}")
    async def process_batch(request: Request, batch_id: str, background_tasks: BackgroundTasks) -> BatchStatus:
        """Start verifying an uploaded batch in the background."""
        batch = get_batch(request, batch_id)

        if batch["status"] == "processing":
            return _status(batch_id, batch)
        if batch["status"] != "uploaded":
            raise HTTPException(status_code=409, detail=f"Batch already {batch['status']}")

        batch["status"] = "processing"
        background_tasks.add_task(_run_batch, request.app, batch_id)
        return _status(batch_id, batch)

    @app.post("/cancel/{batch_id}")
    async def cancel_batch(request: Request, batch_id: str) -> BatchStatus:
        """Stop starting new verifications; records not yet sent are marked cancelled."""
        batch = get_batch(request, batch_id)
        batch["cancel_event"].set()
        if batch["status"] == "uploaded":
            batch["status"] = "cancelled"
        logger.info(f"Cancellation requested for batch {batch_id}")
        return _status(batch_id, batch)

    @app.get("/status/{batch_id}")
    async def get_status(request: Request, batch_id: str) -> BatchStatus:
        """Get processing status for a batch."""
        return _status(batch_id, get_batch(request, batch_id))

    @app.get("/records/{batch_id}")
    async def get_records(request: Request, batch_id: str) -> List[Dict]:
        """Persisted records of a batch, decrypted for display."""
        get_batch(request, batch_id)
        state = request.app.state
        return [
            to_display_row(r, state.cipher, mask=app_config.mask_sensitive_data)
            for r in state.store.list_batch(batch_id)
        ]

    @app.post("/export/{batch_id}")
    async def export_excel(request: Request, batch_id: str) -> FileResponse:
        """Export a processed batch to Excel."""
        batch = get_batch(request, batch_id)
        result = batch.get("result")
        if result is None:
            raise HTTPException(status_code=400, detail="Batch has not been processed")

        state = request.app.state
        rows = [to_display_row(r, state.cipher, mask=True) for r in state.store.list_batch(batch_id)]

        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        output_path = app_config.output_dir / f"KYC_{batch_id}_{timestamp}.xlsx"
        write_excel(result, output_path, include_summary=True, display_rows=rows)

        return FileResponse(
            path=output_path,
            filename=output_path.name,
            media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
        )

    @app.delete("/session/{batch_id}")
    async def delete_session(request: Request, batch_id: str) -> Dict:
        """Forget a batch and its persisted records."""
        batch = get_batch(request, batch_id)
        if batch["status"] == "processing":
            raise HTTPException(status_code=409, detail="Batch is still processing; cancel it first")
        batch["cancel_event"].set()

        state = request.app.state
        removed = 0
        if hasattr(state.store, "delete_batch"):
            removed = state.store.delete_batch(batch_id)
        del state.batches[batch_id]
        state.retired_ids.add(batch_id)

        logger.info(f"Deleted batch {batch_id} ({removed} records)")
        return {"status": "deleted", "batch_id": batch_id, "records_removed": removed}

    @app.get("/batches")
    async def list_batches(request: Request) -> List[Dict]:
        """Every known batch, newest first, with per-status record counts."""
        state = request.app.state
        listing = []

        for batch_id, batch in state.batches.items():
            records = state.store.list_batch(batch_id)
            listing.append({
                "batch_id": batch_id,
                "filename": batch["filename"],
                "identifier_type": batch["identifier_type"].value,
                "status": batch["status"],
                "total_rows": batch["sheet"].total_rows,
                "total_records": len(records),
                "status_counts": status_counts(records),
                "created_at": batch["created_at"],
            })

        # Single verifications only exist in the store
        for batch_id in state.store.batch_ids():
            if batch_id in state.batches:
                continue
            records = state.store.list_batch(batch_id)
            listing.append({
                "batch_id": batch_id,
                "filename": None,
                "identifier_type": records[0].identifier_type.value,
                "status": "completed",
                "total_rows": len(records),
                "total_records": len(records),
                "status_counts": status_counts(records),
                "created_at": records[0].stored_at.isoformat(),
            })

        return sorted(listing, key=lambda b: b["created_at"], reverse=True)

    @app.get("/stats")
    async def get_stats(request: Request, timeframe: str = "all") -> Dict:
        """Status totals and success rate over stored records."""
        since = _timeframe_start(timeframe, datetime.now())
        stats = verification_stats(request.app.state.store, since)
        stats["timeframe"] = timeframe
        return stats

    @app.post("/verify-single")
    async def verify_single(request: Request, body: SingleVerificationRequest) -> Dict:
        """
        Verify one identity without a spreadsheet.

        The values run as a one-row batch, so validation, retries, fallback
        and encrypted persistence behave exactly as for uploads.
        """
        try:
            id_type = IdentifierType(body.identifier_type.lower())
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Unknown identifier type: {body.identifier_type}")

        identifier_field = (CanonicalField.AADHAAR_NUMBER if id_type == IdentifierType.AADHAAR
                            else CanonicalField.PAN_NUMBER)
        row = {
            identifier_field.value: body.identifier,
            CanonicalField.NAME.value: body.name,
            CanonicalField.DATE_OF_BIRTH.value: body.date_of_birth,
            CanonicalField.GENDER.value: body.gender,
            CanonicalField.REASON.value: body.reason,
        }
        sheet = SheetData(headers=list(row), rows=[row], source_name="verify-single")

        state = request.app.state
        batch_id = next_batch_id("single", _known_batch_ids(state))
        orchestrator = BatchOrchestrator(state.settings, state.cipher, state.store, transport=state.transport)

        try:
            result = await orchestrator.run_batch(sheet, batch_id, id_type)
        except AuthError as e:
            logger.error(f"Single verification failed: {e}")
            raise HTTPException(status_code=502, detail=str(e))

        if result.skipped:
            raise HTTPException(status_code=400, detail=result.skipped[0].reason)

        stored = state.store.list_batch(batch_id)[0]
        logger.info(f"Single verification {batch_id}: {stored.outcome.status.value}")
        return to_display_row(stored, state.cipher, mask=app_config.mask_sensitive_data)

    return app


async def _run_batch(app: FastAPI, batch_id: str):
    """Background task that runs one batch through the orchestrator."""
    state = app.state
    batch = state.batches[batch_id]

    def on_outcome(outcome):
        batch["processed"] += 1

    orchestrator = BatchOrchestrator(state.settings, state.cipher, state.store, transport=state.transport)
    try:
        result = await orchestrator.run_batch(
            batch["sheet"],
            batch_id,
            batch["identifier_type"],
            cancel_event=batch["cancel_event"],
            on_outcome=on_outcome,
        )
    except KycError as e:
        logger.error(f"Batch {batch_id} failed: {e}")
        batch["status"] = "failed"
        batch["error"] = str(e)
        return
    except Exception as e:
        logger.exception(f"Unexpected error in batch {batch_id}")
        batch["status"] = "failed"
        batch["error"] = f"Unexpected error: {e}"
        return

    batch["result"] = result
    batch["status"] = "cancelled" if result.summary.cancelled else "completed"
    logger.info(f"Batch {batch_id} {batch['status']}: {result.summary.accepted_records} records, "
                f"{result.summary.skipped_rows} skipped")


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host=app_config.api_host,
        port=app_config.api_port,
        reload=True
    )
