"""
Shared fixtures for the PBM contract intelligence tests.

The sample contracts are small but realistic: a sponsor-unfriendly current
agreement, the transparent-model template rendered from the reference data,
and a full PBM agreement that exercises every term the parser looks for.
"""

import pytest

from pbm_intel.config import EngineSettings
from pbm_intel.models import Contract
from pbm_intel.parser import PBMTermParser
from pbm_intel.reference import get_reference_data


CURRENT_CONTRACT_TEXT = """PHARMACY BENEFIT SERVICES AGREEMENT
Between Acme Manufacturing Health Plan and MegaPBM Inc.

Section 1: Rebates
PBM shall retain 30% of manufacturer rebates. Rebate retention compensates PBM for formulary management. Rebates paid annually at PBM sole discretion.
Brand rebates: 18% of WAC. Generic rebates: 70% of AWP. Specialty rebates: 6% of WAC.

Section 2: Audit Rights
Client may conduct one audit per year. Audit scope is limited to claims from the prior 12 months and the auditor must be approved by PBM. Client bears all audit costs.

Section 3: Data Ownership
PBM retains proprietary data rights to all de-identified member data and may share data with affiliates.

Section 4: Termination
Termination without cause requires a 180 days notice period. An early termination fee of $250,000 applies.

Section 5: MAC Pricing
Generic drugs are priced at PBM MAC list rates. The MAC list is proprietary pricing and is not disclosed to Client.

Section 6: Confidentiality
All pricing terms are confidential information of PBM.
"""


PBM_CONTRACT_TEXT = """PHARMACY BENEFIT MANAGEMENT AGREEMENT

This Agreement is entered into between [Client Name] and Express Scripts

EFFECTIVE DATE: 01/01/2024
TERMINATION DATE: 12/31/2026

ARTICLE 1: REBATE TERMS
The PBM shall retain 35% of all manufacturer rebates.
Pass-through to Client: 65% of rebates on a quarterly basis.
Guaranteed minimum rebate: $2.50 per brand script, $0.50 per generic script.

ARTICLE 2: PRICING
Ingredient Cost: AWP minus 15% for brand drugs, AWP minus 60% for generic drugs.
Dispensing Fee: $2.50 per retail prescription, $5.00 per mail order.
MAC pricing shall be determined by PBM proprietary methodology.

ARTICLE 3: ADMINISTRATIVE FEES
PEPM Administrative Fee: $8.50 per member per month
Per Script Fee: $0.75 per dispensed prescription
Performance Guarantee: $250,000 annual savings or fee rebate

ARTICLE 4: SPECIALTY PHARMACY
Specialty Threshold: Medications costing more than $1,000 per prescription.
Mandatory Specialty Network: All specialty medications must be filled through PBM specialty pharmacy.
White Bagging: Permitted for limited specialty drugs.
Prior Authorization required for all specialty medications.

ARTICLE 5: MAIL ORDER
Members are encouraged to use mail order for maintenance medications.
Mandatory mail order for 90-day supplies of chronic medications.
"""


@pytest.fixture
def reference():
    return get_reference_data()


@pytest.fixture
def settings():
    return EngineSettings()


@pytest.fixture
def current_text():
    return CURRENT_CONTRACT_TEXT


@pytest.fixture
def template_text(reference):
    return reference.template_contract_text()


@pytest.fixture
def pbm_text():
    return PBM_CONTRACT_TEXT


@pytest.fixture
def contract():
    return Contract(
        id="acme",
        name="Acme Manufacturing PBM Agreement",
        pbm_name="MegaPBM",
        lives_covered=5000,
        annual_spend=10_000_000,
    )


@pytest.fixture
def parsed_contract(pbm_text, settings):
    result = PBMTermParser(settings).parse(pbm_text, "contract_test")
    assert result.success
    return result.data
