"""
Tests for the PDF report renderer.
"""

import pytest

from pbm_intel.actuarial import ActuarialReportGenerator
from pbm_intel.financial_model import FinancialModelingEngine
from pbm_intel.models import TransparencyLevel, UtilizationAssumptions
from pbm_intel.report_gen import _money, _savings_tier, generate_pdf_report


def test_money_formatting():
    assert _money(1234567.8) == "$1,234,568"
    assert _money(-25000) == "-$25,000"


@pytest.mark.parametrize("pct,label", [
    (20.0, "Critical Arbitrage Exposure"),
    (10.8, "Significant Savings Available"),
    (0.0, "Moderate Optimization Potential"),
])
def test_savings_tier(pct, label):
    assert _savings_tier(pct)[0] == label


def test_generate_pdf(tmp_path, settings, parsed_contract):
    model = FinancialModelingEngine(settings).generate(parsed_contract)
    report = ActuarialReportGenerator().generate(parsed_contract, model)
    path = tmp_path / "report.pdf"

    generate_pdf_report(report, str(path))

    assert path.read_bytes().startswith(b"%PDF")


def test_generate_pdf_without_opportunities(tmp_path, settings, parsed_contract):
    """A contract with nothing to flag still renders every section."""
    clean = parsed_contract.model_copy(update={
        "rebate_terms": parsed_contract.rebate_terms.model_copy(
            update={"retained_percentage": 0.0, "passthrough_percentage": 100.0}
        ),
        "spread_pricing": parsed_contract.spread_pricing.model_copy(
            update={"transparency_level": TransparencyLevel.FULL}
        ),
        "specialty_definition": parsed_contract.specialty_definition.model_copy(
            update={"mandatory_mail_percentage": 0.0}
        ),
    })
    model = FinancialModelingEngine(settings).generate(clean, UtilizationAssumptions())
    report = ActuarialReportGenerator().generate(clean, model)
    assert report.implementation_roadmap == []

    path = tmp_path / "clean.pdf"
    generate_pdf_report(report, str(path))
    assert path.stat().st_size > 0
