# ============================================================================
# api/main.py
# ============================================================================
"""
FastAPI Backend for the Prescription Triage Pipeline

Runs on port 8000.
- POST /api/prescriptions/scan  image upload -> text + medications
- POST /api/chat                chat message -> reply + severity
- POST /api/history            add chronic conditions and medications
- GET  /api/history/{user_id}   stored patient history
"""

import sys
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from prescription_triage.config import base_settings, logging_settings
from prescription_triage.constants.medication_terms import DEFAULT_DOSAGE
from prescription_triage.core.models import MedicationEntity, RawDocument, Timing
from prescription_triage.core.pipeline import TriagePipeline
from prescription_triage.utils.exceptions import (
    ExtractionFailedError,
    InvalidInputError,
    NoBackendAvailableError,
    PrescriptionTriageError,
    UnexpectedBackendError,
)
from prescription_triage.utils.logging import setup_logging

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    InvalidInputError: 400,
    ExtractionFailedError: 422,
    UnexpectedBackendError: 502,
    NoBackendAvailableError: 503,
}


_pipeline: Optional[TriagePipeline] = None


def get_pipeline() -> TriagePipeline:
    """Shared pipeline, built on first use."""
    global _pipeline
    if _pipeline is None:
        base_settings.create_directories()
        _pipeline = TriagePipeline.from_config()
    return _pipeline


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(
        level=logging_settings.LOG_LEVEL,
        log_file=logging_settings.LOG_FILE,
        format_json=logging_settings.LOG_FORMAT_JSON,
    )
    yield
    global _pipeline
    if _pipeline is not None:
        await _pipeline.close()
        _pipeline = None


app = FastAPI(
    title="Prescription Triage API",
    description="Prescription scanning, medical knowledge lookup and severity triage",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000", "http://localhost:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(PrescriptionTriageError)
async def triage_error_handler(request: Request, exc: PrescriptionTriageError):
    status = next(
        (code for cls, code in ERROR_STATUS.items() if isinstance(exc, cls)),
        500,
    )
    if status >= 500:
        logger.error(f"{request.url.path} failed: {exc.kind}: {exc.message}")
    else:
        logger.info(f"{request.url.path} rejected: {exc.kind}: {exc.message}")
    return JSONResponse(status_code=status, content={"success": False, "error": exc.to_dict()})


# ============================================================================
# Models
# ============================================================================

class ChatRequest(BaseModel):
    userId: Optional[str] = None
    message: Optional[str] = None
    context: Optional[str] = None
    turnId: Optional[str] = None


class MedicationInput(BaseModel):
    name: str
    dosage: Optional[str] = None
    timing: Timing = Timing.AS_DIRECTED


class HistoryUpdateRequest(BaseModel):
    userId: Optional[str] = None
    chronicConditions: List[str] = []
    activeMedications: List[MedicationInput] = []


# ============================================================================
# Endpoints
# ============================================================================

@app.get("/api/health")
async def health() -> Dict[str, Any]:
    return {"status": "ok"}


@app.post("/api/prescriptions/scan")
async def scan_prescription(
    file: UploadFile = File(...),
    user_id: Optional[str] = Form(default=None),
    language: Optional[str] = Form(default=None),
    pipeline: TriagePipeline = Depends(get_pipeline),
) -> Dict[str, Any]:
    """Extract text and medications from an uploaded prescription image."""
    content = await file.read()
    document = RawDocument(
        content=content,
        mime_type=file.content_type or "",
        filename=file.filename,
        language=language,
    )
    result = await pipeline.scan_prescription(document, user_id=user_id)
    return {"success": True, **result.to_dict()}


@app.post("/api/chat")
async def chat(
    request: ChatRequest,
    pipeline: TriagePipeline = Depends(get_pipeline),
) -> Dict[str, Any]:
    """Answer a chat message with severity metadata."""
    response = await pipeline.chat(
        request.message,
        user_id=request.userId,
        context=request.context,
        turn_id=request.turnId,
    )
    return {"success": True, **response.to_dict()}


@app.post("/api/history")
async def update_history(
    request: HistoryUpdateRequest,
    pipeline: TriagePipeline = Depends(get_pipeline),
) -> Dict[str, Any]:
    """Add patient-reported chronic conditions and medications."""
    medications = [
        MedicationEntity(name=m.name.strip(), dosage=m.dosage or DEFAULT_DOSAGE, timing=m.timing)
        for m in request.activeMedications
    ]
    record = await pipeline.update_history(
        request.userId,
        conditions=request.chronicConditions,
        medications=medications,
    )
    return {"success": True, "history": record}


@app.get("/api/history/{user_id}")
def get_history(
    user_id: str,
    pipeline: TriagePipeline = Depends(get_pipeline),
) -> Dict[str, Any]:
    """Stored patient history, severity log and recent conversation."""
    record = pipeline.history.get(user_id)
    if record is None:
        raise HTTPException(status_code=404, detail=f"No history for user '{user_id}'")
    return {
        "success": True,
        "history": record,
        "severityHistory": pipeline.history.severity_history(user_id),
        "turns": pipeline.history.get_turns(user_id),
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
