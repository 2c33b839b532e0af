"""
Upload processing pipeline: upload -> parsing -> modeling -> reporting -> complete.

A stage failure halts the run at that stage with the error recorded; it is the
only fatal path. Runs synchronously, so the API hands it to a thread executor.
"""

import logging
import os
from datetime import datetime, timezone
from typing import Callable, Optional

from .actuarial import ActuarialReportGenerator
from .financial_model import FinancialModelingEngine
from .models import (
    ContractProcessingPipeline,
    PipelineStage,
    SessionData,
    SessionStatus,
    UtilizationAssumptions,
)
from .parser import PBMTermParser

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = (".pdf", ".docx", ".txt")

STAGE_MESSAGES = {
    PipelineStage.PARSING: "Parsing contract terms...",
    PipelineStage.MODELING: "Building financial model...",
    PipelineStage.REPORTING: "Generating actuarial report...",
    PipelineStage.COMPLETE: "Analysis complete",
}


class PipelineError(Exception):
    def __init__(self, stage: PipelineStage, message: str):
        super().__init__(message)
        self.stage = stage


def validate_upload(filename: str, size: int, max_mb: int = 20) -> None:
    """Raise ValueError when the upload's type or size is not accepted."""
    ext = os.path.splitext(filename.lower())[1]
    if ext not in ALLOWED_EXTENSIONS:
        raise ValueError("Only PDF, DOCX and TXT files are supported.")
    if size <= 0:
        raise ValueError("Uploaded file is empty.")
    if size > max_mb * 1024 * 1024:
        raise ValueError(f"File size must not exceed {max_mb}MB.")


def run_pipeline(
    text: str,
    contract_id: str,
    utilization: Optional[UtilizationAssumptions] = None,
    filename: Optional[str] = None,
    parser: Optional[PBMTermParser] = None,
    modeler: Optional[FinancialModelingEngine] = None,
    reporter: Optional[ActuarialReportGenerator] = None,
    on_stage: Optional[Callable[[PipelineStage], None]] = None,
) -> ContractProcessingPipeline:
    parser = parser or PBMTermParser()
    modeler = modeler or FinancialModelingEngine(parser.settings)
    reporter = reporter or ActuarialReportGenerator()

    pipeline = ContractProcessingPipeline(contract_id=contract_id, started_at=datetime.now(timezone.utc))

    def advance(stage: PipelineStage) -> None:
        pipeline.current_stage = stage
        logger.info("Pipeline %s -> %s", contract_id, stage.value)
        if on_stage is not None:
            on_stage(stage)

    try:
        advance(PipelineStage.PARSING)
        result = parser.parse(text, contract_id)
        pipeline.parse_result = result
        if not result.success or result.data is None:
            raise PipelineError(
                PipelineStage.PARSING,
                "Contract parsing failed: " + ("; ".join(result.errors) or "no data extracted"),
            )

        advance(PipelineStage.MODELING)
        pipeline.financial_model = modeler.generate(result.data, utilization)

        advance(PipelineStage.REPORTING)
        pipeline.actuarial_report = reporter.generate(result.data, pipeline.financial_model, filename)

        advance(PipelineStage.COMPLETE)
        pipeline.completed_at = datetime.now(timezone.utc)
    except PipelineError as e:
        pipeline.failed = True
        pipeline.errors.append(str(e))
        logger.error("Pipeline %s halted at %s: %s", contract_id, e.stage.value, e)
    except Exception as e:
        pipeline.failed = True
        pipeline.errors.append(f"{pipeline.current_stage.value} stage failed: {e}")
        logger.exception("Pipeline %s failed at %s", contract_id, pipeline.current_stage.value)

    return pipeline


def process_contract_background(
    sessions: dict,
    session_id: str,
    text: str,
    utilization: Optional[UtilizationAssumptions] = None,
) -> None:
    session: SessionData = sessions[session_id]
    session.status = SessionStatus.PROCESSING
    session.status_message = "Reading contract..."

    def on_stage(stage: PipelineStage) -> None:
        session.status_message = STAGE_MESSAGES.get(stage, session.status_message)

    pipeline = run_pipeline(
        text,
        session.contract_id,
        utilization,
        filename=session.filename or None,
        on_stage=on_stage,
    )
    session.pipeline = pipeline

    if pipeline.failed:
        session.status = SessionStatus.ERROR
        session.status_message = "Analysis failed"
        session.error_message = "; ".join(pipeline.errors)
    else:
        session.status = SessionStatus.COMPLETE
        session.status_message = STAGE_MESSAGES[PipelineStage.COMPLETE]
