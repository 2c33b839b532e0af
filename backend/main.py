"""
PBM Contract Intelligence: FastAPI Backend
"""

import asyncio
import logging
import os
import uuid
from contextlib import asynccontextmanager
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI, File, Form, HTTPException, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse
from pydantic import BaseModel, ValidationError

from pbm_intel.actuarial import format_report_for_board
from pbm_intel.benchmark import BenchmarkOracle
from pbm_intel.config import load_settings
from pbm_intel.document import extract_text
from pbm_intel.intelligence import ContractIntelligenceOrchestrator
from pbm_intel.models import Contract, SessionData, SessionStatus, UtilizationAssumptions
from pbm_intel.pipeline import process_contract_background, validate_upload
from pbm_intel.reference import get_reference_data
from pbm_intel.report_gen import generate_pdf_report

load_dotenv()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger("pbm_intel.api")

settings = load_settings()
REPORTS_DIR = os.path.join(settings.data_dir, "reports")
os.makedirs(REPORTS_DIR, exist_ok=True)

sessions: dict[str, SessionData] = {}


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Load reference tables once before serving requests
    reference = get_reference_data()
    logger.info("Reference data version %s ready", reference.version)
    yield


app = FastAPI(title="PBM Contract Intelligence", lifespan=lifespan)

_origins = ["http://localhost:5173", "http://localhost:3000", "http://127.0.0.1:5173"]
_frontend_url = os.getenv("FRONTEND_URL", "").strip()
if _frontend_url:
    _origins.append(_frontend_url)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _get_session(session_id: str) -> SessionData:
    if session_id not in sessions:
        raise HTTPException(status_code=404, detail="Session not found.")
    return sessions[session_id]


def _require_complete(session: SessionData) -> None:
    if session.status == SessionStatus.ERROR:
        raise HTTPException(status_code=409, detail=f"Analysis failed: {session.error_message}")
    if session.status != SessionStatus.COMPLETE:
        raise HTTPException(
            status_code=409,
            detail=f"Analysis is not complete yet. Current status: {session.status.value}",
        )


# ── Upload Pipeline Endpoints ─────────────────────────────────────────────────

async def _run_pipeline(session_id: str, text: str, utilization: UtilizationAssumptions):
    """Run the pipeline in the thread pool to avoid blocking the event loop."""
    loop = asyncio.get_event_loop()
    await loop.run_in_executor(
        None, process_contract_background, sessions, session_id, text, utilization
    )


@app.post("/api/analyze")
async def analyze_contract(
    file: UploadFile = File(...),
    covered_lives: Optional[int] = Form(None),
    annual_scripts: Optional[int] = Form(None),
    avg_cost_per_script: Optional[float] = Form(None),
    specialty_percentage: Optional[float] = Form(None),
    mail_order_percentage: Optional[float] = Form(None),
):
    filename = file.filename or ""
    file_bytes = await file.read()

    try:
        validate_upload(filename, len(file_bytes), settings.max_upload_mb)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    provided = {
        "covered_lives": covered_lives,
        "annual_scripts": annual_scripts,
        "avg_cost_per_script": avg_cost_per_script,
        "specialty_percentage": specialty_percentage,
        "mail_order_percentage": mail_order_percentage,
    }
    try:
        utilization = UtilizationAssumptions(**{k: v for k, v in provided.items() if v is not None})
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=f"Invalid utilization assumptions: {e.error_count()} field(s) out of range")

    try:
        text = extract_text(file_bytes, filename)
    except Exception as e:
        logger.warning("Failed to read %s: %s", filename, e)
        raise HTTPException(status_code=400, detail=f"Failed to read file: {str(e)}")

    if not text.strip():
        raise HTTPException(status_code=400, detail="No readable text found in the file.")

    session_id = str(uuid.uuid4())
    sessions[session_id] = SessionData(contract_id=f"contract_{session_id[:8]}", filename=filename)
    logger.info("Session %s queued for %s", session_id, filename)

    asyncio.create_task(_run_pipeline(session_id, text, utilization))

    return {"session_id": session_id}


@app.get("/api/status/{session_id}")
async def get_status(session_id: str):
    session = _get_session(session_id)
    pipeline = session.pipeline
    return {
        "status": session.status,
        "status_message": session.status_message,
        "stage": pipeline.current_stage if pipeline else None,
        "errors": pipeline.errors if pipeline else [],
        "error_message": session.error_message,
    }


@app.get("/api/report/{session_id}")
async def get_report(session_id: str):
    session = _get_session(session_id)
    _require_complete(session)

    pipeline = session.pipeline
    parsed = pipeline.parse_result.data
    return {
        "report": pipeline.actuarial_report.model_dump(mode="json"),
        "parsed_contract": parsed.model_dump(mode="json"),
        "board_text": format_report_for_board(pipeline.actuarial_report),
        "download_url": f"/api/download/{session_id}",
    }


@app.get("/api/download/{session_id}")
async def download_report(session_id: str):
    session = _get_session(session_id)
    _require_complete(session)

    if not session.pdf_path or not os.path.exists(session.pdf_path):
        pdf_path = os.path.join(REPORTS_DIR, f"{session_id}.pdf")
        try:
            generate_pdf_report(session.pipeline.actuarial_report, pdf_path)
        except Exception as e:
            logger.exception("PDF generation failed for session %s", session_id)
            raise HTTPException(status_code=500, detail=f"Failed to generate PDF report: {str(e)}")
        session.pdf_path = pdf_path

    report = session.pipeline.actuarial_report
    safe_pbm = "".join(c for c in report.pbm_name if c.isalnum() or c in " _-")[:30].strip().replace(" ", "_")
    return FileResponse(
        session.pdf_path,
        media_type="application/pdf",
        filename=f"PBM_Arbitrage_Analysis_{safe_pbm or 'Report'}.pdf",
    )


# ── Contract Intelligence Endpoints ───────────────────────────────────────────

class IntelligenceRequest(BaseModel):
    current_text: str
    contract: Contract
    template_text: Optional[str] = None


class HealthCheckRequest(BaseModel):
    text: str
    contract_id: str = "quick_check"


@app.post("/api/intelligence")
async def contract_intelligence(request: IntelligenceRequest):
    if not request.current_text.strip():
        raise HTTPException(status_code=400, detail="Contract text is empty.")

    orchestrator = ContractIntelligenceOrchestrator(get_reference_data(), settings)
    loop = asyncio.get_event_loop()
    report = await loop.run_in_executor(
        None, orchestrator.analyze_contract, request.current_text, request.contract, request.template_text
    )
    return {"report": report.model_dump(mode="json"), "briefing": report.executive_briefing}


@app.post("/api/health-check")
async def contract_health_check(request: HealthCheckRequest):
    if not request.text.strip():
        raise HTTPException(status_code=400, detail="Contract text is empty.")
    orchestrator = ContractIntelligenceOrchestrator(get_reference_data(), settings)
    return orchestrator.quick_health_check(request.text, request.contract_id).model_dump(mode="json")


@app.get("/api/benchmarks")
async def benchmarks():
    oracle = BenchmarkOracle(get_reference_data(), settings)
    return [b.model_dump(mode="json") for b in oracle.get_all_benchmarks()]


# ── Health Check ──────────────────────────────────────────────────────────────

@app.get("/api/health")
async def health():
    return {
        "status": "ok",
        "sessions_active": len(sessions),
        "reference_version": get_reference_data().version,
    }
