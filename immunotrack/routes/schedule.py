"""
ImmunoTrack - Schedule API Routes
Read-only listing of the national esquema
"""

from fastapi import APIRouter, Depends, Query

from immunotrack.engine import ImmunizationEngine
from immunotrack.routes.dependencies import get_engine

router = APIRouter(prefix="/api/v1/schedule", tags=["Schedule"])


@router.get("")
def list_schedule(
    include_inactive: bool = Query(False),
    engine: ImmunizationEngine = Depends(get_engine)
):
    """Vaccines and schedule entries ordered by target age"""
    catalog = engine.catalog
    return {
        "vaccines": catalog.vaccines(include_inactive=include_inactive),
        "entries": catalog.all_entries(include_inactive=include_inactive),
        "statistics": catalog.statistics()
    }


@router.get("/age/{age_days}")
def entries_for_age(
    age_days: int,
    limit: int = Query(5, ge=1, le=50),
    engine: ImmunizationEngine = Depends(get_engine)
):
    """Entries due by the given age and the next ones after it"""
    catalog = engine.catalog
    return {
        "age_days": age_days,
        "due": catalog.entries_for_age(age_days),
        "next": catalog.next_entries(age_days, limit)
    }
