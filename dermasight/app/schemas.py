"""
Pydantic Schemas — Data Models
===============================
Defines the data contracts for DermaSight: the transient upstream
prediction, the persisted scan and profile records, and the proxy's
request/response bodies.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from dermasight.app.config import HIGH_RISK_THRESHOLD

HIGH_RISK_STATUS = "high-risk"
NORMAL_STATUS = "normal"

DEFAULT_DISEASE_NAME = "Unknown"
DEFAULT_RECOMMENDATION = "Please consult a dermatologist for proper diagnosis."


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def is_high_risk(confidence: int) -> bool:
    """High-risk means strictly above the threshold percentage."""
    return confidence > HIGH_RISK_THRESHOLD


class Role(str, Enum):
    """Account role, provisioned outside the application."""
    PATIENT = "patient"
    DOCTOR = "doctor"


# ===================================================================
# Upstream classification payload
# ===================================================================

class Prediction(BaseModel):
    """One ranked condition as returned by the classification service.

    ``confidence`` is a fraction in [0, 1]. Extra keys sent by the
    service are kept so the proxy can relay them untouched.
    """
    model_config = ConfigDict(extra="allow")

    name: str | None = None
    confidence: float | None = None
    recommendation: str | None = None


class ClassificationResult(BaseModel):
    model_config = ConfigDict(extra="allow")

    predictions: list[Prediction] = []

    @property
    def top(self) -> Prediction | None:
        return self.predictions[0] if self.predictions else None


# ===================================================================
# Proxy request / response bodies
# ===================================================================

class AnalyzeRequest(BaseModel):
    imageBase64: str = Field(..., min_length=1)


class ErrorResponse(BaseModel):
    error: str


# ===================================================================
# Persisted records
# ===================================================================

class NewScan(BaseModel):
    """A scan about to be inserted. ``created_at`` defaults to now."""
    user_id: str
    image_url: str
    disease_name: str
    confidence: int = Field(..., ge=0, le=100)
    recommendation: str
    status: str = NORMAL_STATUS
    created_at: datetime | None = None


class Scan(BaseModel):
    """A stored classification result. Scans are never updated."""
    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: str
    user_id: str
    image_url: str
    disease_name: str
    confidence: int = Field(..., ge=0, le=100)
    recommendation: str
    created_at: datetime
    status: str

    @property
    def is_high_risk(self) -> bool:
        return is_high_risk(self.confidence)


class ScanWithOwner(Scan):
    """Scan joined with the owner's profile, for the doctor dashboard."""
    owner_name: str | None = None
    owner_email: str | None = None


class Profile(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    full_name: str
    email: str
    role: Role = Role.PATIENT
    created_at: datetime = Field(default_factory=_utcnow)


class ProfileUpdate(BaseModel):
    """The only profile field a user may change."""
    full_name: str = Field(..., min_length=1, max_length=256)


# ===================================================================
# Client-side views
# ===================================================================

class AnalysisResult(BaseModel):
    """What the Results screen renders after an analysis."""
    disease_name: str
    confidence: int = Field(..., ge=0, le=100)
    recommendation: str
    image_url: str

    @property
    def is_high_risk(self) -> bool:
        return is_high_risk(self.confidence)


class DashboardStats(BaseModel):
    total_scans: int = 0
    high_risk_cases: int = 0
    patients_scanned: int = 0


class ChatMessage(BaseModel):
    role: str  # "user" | "bot"
    message: str
