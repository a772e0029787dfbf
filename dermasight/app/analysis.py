"""
Analyze Action — Client Contract
================================
What happens when the user presses "Analyze": one call to the proxy, the
top prediction turned into a scan, the scan written to the repository.

A failed write does not hide the result: the user still sees what the
classifier said, with a warning that it was not saved.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, MutableMapping, Optional, Protocol

import requests
from pydantic import ValidationError

from dermasight.app import config
from dermasight.app.errors import (
    AnalysisInProgress,
    NoPredictions,
    PersistenceError,
    ServiceUnavailable,
    UpstreamError,
)
from dermasight.app.schemas import (
    DEFAULT_DISEASE_NAME,
    DEFAULT_RECOMMENDATION,
    HIGH_RISK_STATUS,
    NORMAL_STATUS,
    AnalysisResult,
    ClassificationResult,
    NewScan,
    Prediction,
    Scan,
    is_high_risk,
)
from dermasight.app.session import UserSession

logger = logging.getLogger(__name__)


class Analyzer(Protocol):
    def analyze(self, image_base64: str) -> dict[str, Any]: ...


class ScanWriter(Protocol):
    def insert(self, scan: NewScan) -> Scan: ...


# ---------------------------------------------------------------------------
# Proxy client
# ---------------------------------------------------------------------------

class ProxyClient:
    """Calls the analysis proxy over HTTP."""

    def __init__(self, url: str = config.PROXY_URL, timeout: float = config.AUTODERM_TIMEOUT + 5):
        self.url = url
        self.timeout = timeout

    def analyze(self, image_base64: str) -> dict[str, Any]:
        try:
            response = requests.post(
                self.url, json={"imageBase64": image_base64}, timeout=self.timeout
            )
        except requests.exceptions.RequestException as exc:
            logger.error("Analysis proxy unreachable: %s", exc)
            raise ServiceUnavailable("Analysis service is unreachable") from exc

        try:
            payload = response.json()
        except ValueError:
            payload = {}
        if not isinstance(payload, dict):
            payload = {}

        if not response.ok or "error" in payload:
            message = payload.get("error") or f"Analysis failed ({response.status_code})"
            raise UpstreamError(message, status_code=response.status_code)
        return payload


# ---------------------------------------------------------------------------
# Prediction -> scan
# ---------------------------------------------------------------------------

def confidence_percent(fraction: Any) -> int:
    """Fraction in [0, 1] to an integer percent, rounding halves up.

    Out-of-range upstream values are clamped to [0, 100]; anything
    non-numeric counts as 0.
    """
    try:
        value = float(fraction)
    except (TypeError, ValueError):
        return 0
    if math.isnan(value):
        return 0
    if math.isinf(value):
        return 100 if value > 0 else 0
    percent = math.floor(value * 100 + 0.5)
    return max(0, min(100, percent))


def prediction_to_result(prediction: Prediction, image_url: str) -> AnalysisResult:
    return AnalysisResult(
        disease_name=prediction.name or DEFAULT_DISEASE_NAME,
        confidence=confidence_percent(prediction.confidence or 0),
        recommendation=prediction.recommendation or DEFAULT_RECOMMENDATION,
        image_url=image_url,
    )


def prediction_to_scan(prediction: Prediction, user_id: str, image_url: str) -> NewScan:
    result = prediction_to_result(prediction, image_url)
    return NewScan(
        user_id=user_id,
        image_url=image_url,
        disease_name=result.disease_name,
        confidence=result.confidence,
        recommendation=result.recommendation,
        status=HIGH_RISK_STATUS if is_high_risk(result.confidence) else NORMAL_STATUS,
    )


# ---------------------------------------------------------------------------
# Analyze action
# ---------------------------------------------------------------------------

@dataclass
class AnalysisOutcome:
    result: AnalysisResult
    scan: Optional[Scan] = None
    save_error: Optional[str] = None

    @property
    def saved(self) -> bool:
        return self.scan is not None


class AnalyzeGuard:
    """Allows one in-flight analysis at a time.

    State lives in a mapping (Streamlit's ``session_state``) so it survives
    reruns. The button's ``on_click`` calls :meth:`request`, which marks the
    analysis as requested before the script reruns; the rerun then draws the
    button disabled and performs the analysis inside ``with guard``.
    """

    REQUESTED = "analysis_requested"
    RUNNING = "analyzing"

    def __init__(self, state: Optional[MutableMapping[str, Any]] = None):
        self._state = state if state is not None else {}

    @property
    def requested(self) -> bool:
        return bool(self._state.get(self.REQUESTED, False))

    @property
    def running(self) -> bool:
        return bool(self._state.get(self.RUNNING, False))

    @property
    def busy(self) -> bool:
        return self.requested or self.running

    def request(self) -> None:
        if self.busy:
            raise AnalysisInProgress("An analysis is already running")
        self._state[self.REQUESTED] = True

    def cancel(self) -> None:
        self._state[self.REQUESTED] = False

    def __enter__(self):
        if self.running:
            raise AnalysisInProgress("An analysis is already running")
        self._state[self.RUNNING] = True
        self._state[self.REQUESTED] = False
        return self

    def __exit__(self, *exc_info):
        self._state[self.RUNNING] = False
        return False


def analyze_image(
    session: UserSession,
    image_url: str,
    proxy: Analyzer,
    scans: ScanWriter,
    guard: Optional[AnalyzeGuard] = None,
) -> AnalysisOutcome:
    """Classify ``image_url`` (a data URL) and record the top prediction.

    Raises ``NoPredictions`` when the service returns an empty list and
    any ``UpstreamError`` from the proxy; nothing is saved in those cases.
    """
    guard = guard or AnalyzeGuard()
    with guard:
        payload = proxy.analyze(image_url)
        try:
            top = ClassificationResult.model_validate(payload).top
        except ValidationError as exc:
            logger.error("Unexpected analysis payload: %s", exc)
            raise UpstreamError("Unexpected response from analysis service") from exc
        if top is None:
            raise NoPredictions()

        result = prediction_to_result(top, image_url)
        new_scan = prediction_to_scan(top, session.user_id, image_url)
        try:
            scan = scans.insert(new_scan)
        except PersistenceError as exc:
            logger.error("Analysis shown but not saved for user %s: %s", session.user_id, exc)
            return AnalysisOutcome(result=result, save_error=str(exc))

    logger.info(
        "Saved scan %s for user %s: %s (%d%%)",
        scan.id, session.user_id, scan.disease_name, scan.confidence,
    )
    return AnalysisOutcome(result=result, scan=scan)
