"""
Engine settings.

Every dollar or rate placeholder the engines rely on is a named parameter here
so it can be overridden from the environment (or a .env file) without a code
change. Values are read once by load_settings(); engines receive the resulting
object at construction.
"""

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()

_BACKEND_DIR = str(Path(__file__).parent.parent)


class EngineSettings(BaseModel):
    # Benchmark oracle: impact = deviation (pct points) x spend / 100
    reference_spend_per_category: float = Field(1_000_000.0, gt=0)

    # Financial model
    industry_rebate_rate: float = Field(0.25, ge=0, le=1)
    pbm_acquisition_factor: float = Field(0.85, ge=0, le=1)
    specialty_cost_multiplier: float = Field(10.0, ge=0)
    specialty_markup_rate: float = Field(0.08, ge=0, le=1)
    mail_premium_per_script: float = Field(5.0, ge=0)

    # Parser
    manual_review_threshold: float = Field(0.8, ge=0, le=1)

    # Service
    reference_data_file: Optional[str] = None
    data_dir: str = _BACKEND_DIR
    max_upload_mb: int = Field(20, gt=0)


_ENV_KEYS = {
    "reference_spend_per_category": "REFERENCE_SPEND_PER_CATEGORY",
    "industry_rebate_rate": "INDUSTRY_REBATE_RATE",
    "pbm_acquisition_factor": "PBM_ACQUISITION_FACTOR",
    "specialty_cost_multiplier": "SPECIALTY_COST_MULTIPLIER",
    "specialty_markup_rate": "SPECIALTY_MARKUP_RATE",
    "mail_premium_per_script": "MAIL_PREMIUM_PER_SCRIPT",
    "manual_review_threshold": "MANUAL_REVIEW_THRESHOLD",
    "reference_data_file": "REFERENCE_DATA_FILE",
    "data_dir": "DATA_DIR",
    "max_upload_mb": "MAX_UPLOAD_MB",
}


def load_settings() -> EngineSettings:
    """Build settings from environment variables, falling back to defaults."""
    overrides = {}
    for field_name, env_key in _ENV_KEYS.items():
        raw = os.getenv(env_key, "").strip()
        if raw:
            overrides[field_name] = raw
    return EngineSettings(**overrides)
