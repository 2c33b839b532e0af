"""
Tests for the upload processing pipeline.

Tests:
- Upload validation by extension and size
- A full run through every stage
- A failed stage halts the run with the error recorded
- Background processing updates the session
"""

import pytest

from pbm_intel import pipeline as pipeline_module
from pbm_intel.financial_model import FinancialModelingEngine
from pbm_intel.models import ParseResult, PipelineStage, SessionData, SessionStatus
from pbm_intel.parser import PBMTermParser
from pbm_intel.pipeline import process_contract_background, run_pipeline, validate_upload


class FailingParser(PBMTermParser):
    def parse(self, text, contract_id="contract"):
        return ParseResult(success=False, errors=["Critical parsing error: unreadable"])


class ExplodingModeler(FinancialModelingEngine):
    def generate(self, parsed, utilization=None):
        raise RuntimeError("model exploded")


@pytest.mark.parametrize("filename", ["contract.pdf", "CONTRACT.DOCX", "notes.txt"])
def test_accepts_supported_types(filename):
    validate_upload(filename, 1024)


@pytest.mark.parametrize("filename,size,message", [
    ("contract.doc", 1024, "Only PDF, DOCX and TXT"),
    ("contract.exe", 1024, "Only PDF, DOCX and TXT"),
    ("contract", 1024, "Only PDF, DOCX and TXT"),
    ("contract.pdf", 0, "empty"),
    ("contract.pdf", 21 * 1024 * 1024, "20MB"),
])
def test_rejects_bad_uploads(filename, size, message):
    with pytest.raises(ValueError, match=message):
        validate_upload(filename, size, max_mb=20)


def test_full_run(pbm_text):
    stages = []
    result = run_pipeline(pbm_text, "contract_abc", filename="pbm.txt", on_stage=stages.append)

    assert stages == [
        PipelineStage.PARSING,
        PipelineStage.MODELING,
        PipelineStage.REPORTING,
        PipelineStage.COMPLETE,
    ]
    assert not result.failed
    assert result.errors == []
    assert result.completed_at is not None
    assert result.parse_result.data.pbm_name == "Express Scripts"
    assert result.actuarial_report.contract_id == "contract_abc"


def test_parse_failure_halts_at_parsing(pbm_text):
    result = run_pipeline(pbm_text, "contract_bad", parser=FailingParser())

    assert result.failed
    assert result.current_stage == PipelineStage.PARSING
    assert result.errors == ["Contract parsing failed: Critical parsing error: unreadable"]
    assert result.financial_model is None
    assert result.completed_at is None


def test_modeling_failure_halts_at_modeling(pbm_text):
    result = run_pipeline(pbm_text, "contract_bad", modeler=ExplodingModeler())

    assert result.failed
    assert result.current_stage == PipelineStage.MODELING
    assert result.errors == ["modeling stage failed: model exploded"]
    assert result.parse_result.success
    assert result.actuarial_report is None


def test_background_success(pbm_text):
    sessions = {"s1": SessionData(contract_id="contract_s1", filename="pbm.txt")}
    process_contract_background(sessions, "s1", pbm_text)

    session = sessions["s1"]
    assert session.status == SessionStatus.COMPLETE
    assert session.status_message == "Analysis complete"
    assert session.pipeline.actuarial_report.audit_trail[0].details["filename"] == "pbm.txt"


def test_background_failure(pbm_text, monkeypatch):
    monkeypatch.setattr(pipeline_module, "PBMTermParser", FailingParser)
    sessions = {"s1": SessionData(contract_id="contract_s1")}
    process_contract_background(sessions, "s1", pbm_text)

    session = sessions["s1"]
    assert session.status == SessionStatus.ERROR
    assert session.status_message == "Analysis failed"
    assert "Critical parsing error" in session.error_message
    assert session.pipeline.current_stage == PipelineStage.PARSING
