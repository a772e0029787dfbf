"""
History & Dashboard Views
=========================
Filtering for the patient's history screen and aggregation for the
doctor dashboard. Read-only over scans.
"""

from __future__ import annotations

from typing import Sequence

import pandas as pd

from dermasight.app.schemas import DashboardStats, Scan, ScanWithOwner

FILTERS = {
    "all": "All Scans",
    "high-risk": "High Confidence",
    "low-risk": "Low Confidence",
}

RECENT_LIMIT = 10


def filter_scans(scans: Sequence[Scan], risk_filter: str = "all") -> list[Scan]:
    if risk_filter == "all":
        return list(scans)
    if risk_filter == "high-risk":
        return [s for s in scans if s.is_high_risk]
    if risk_filter == "low-risk":
        return [s for s in scans if not s.is_high_risk]
    raise ValueError(f"Unknown filter: {risk_filter!r}")


def dashboard_stats(scans: Sequence[Scan]) -> DashboardStats:
    return DashboardStats(
        total_scans=len(scans),
        high_risk_cases=sum(1 for s in scans if s.is_high_risk),
        patients_scanned=len({s.user_id for s in scans}),
    )


def recent_scans(scans: Sequence[ScanWithOwner], limit: int = RECENT_LIMIT) -> list[ScanWithOwner]:
    """Newest ``limit`` scans (input is expected newest-first)."""
    return list(scans[:limit])


def scans_to_frame(scans: Sequence[Scan]) -> pd.DataFrame:
    """Tabular view for st.dataframe and CSV export (image data omitted)."""
    data = []
    for s in scans:
        row = {
            "Condition": s.disease_name,
            "Confidence": s.confidence,
            "Status": "High Risk" if s.is_high_risk else "Normal",
            "Recommendation": s.recommendation,
            "Date": s.created_at,
        }
        if isinstance(s, ScanWithOwner):
            row = {
                "Patient": s.owner_name or "Unknown",
                "Email": s.owner_email or "",
                **row,
            }
        data.append(row)
    return pd.DataFrame(data) if data else pd.DataFrame()


def condition_counts(scans: Sequence[Scan]) -> pd.DataFrame:
    """Scans per detected condition, most frequent first."""
    if not scans:
        return pd.DataFrame(columns=["Condition", "Count"])
    counts = pd.Series([s.disease_name for s in scans]).value_counts().reset_index()
    counts.columns = ["Condition", "Count"]
    return counts
