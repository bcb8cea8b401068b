"""
ImmunoTrack - Children API Routes
Schedule projections and notifications for one child
"""

from datetime import date
from typing import Optional
from fastapi import APIRouter, Depends, Query

from immunotrack.engine import ImmunizationEngine
from immunotrack.modules.notifications import notification_statistics, sort_for_display
from immunotrack.routes.dependencies import get_engine, get_repository, get_service
from immunotrack.schemas import NotificationState, NotificationType, VaccinationHistory
from immunotrack.services.repository import ImmunizationRepository
from immunotrack.services.vaccination import VaccinationService

router = APIRouter(prefix="/api/v1/children", tags=["Children"])


@router.get("/{child_id}/pending")
def get_pending_doses(
    child_id: int,
    reference_date: Optional[date] = Query(None, description="Defaults to today"),
    repository: ImmunizationRepository = Depends(get_repository),
    engine: ImmunizationEngine = Depends(get_engine)
):
    """Doses due by age and not yet applied, overdue ones flagged"""
    reference_date = reference_date or date.today()
    bundle = repository.get_child_with_history(child_id)
    pending = engine.projector.pending_doses(bundle.child, bundle.records, reference_date)
    return {
        "child_id": child_id,
        "reference_date": reference_date,
        "pending": pending,
        "count": len(pending),
        "overdue_count": len([p for p in pending if p.is_overdue])
    }


@router.get("/{child_id}/upcoming")
def get_upcoming_doses(
    child_id: int,
    reference_date: Optional[date] = Query(None, description="Defaults to today"),
    lookahead_days: Optional[int] = Query(None, ge=1, le=3650),
    repository: ImmunizationRepository = Depends(get_repository),
    engine: ImmunizationEngine = Depends(get_engine)
):
    """Doses due within the lookahead horizon, most urgent first"""
    reference_date = reference_date or date.today()
    bundle = repository.get_child_with_history(child_id)
    upcoming = engine.projector.upcoming_doses(
        bundle.child, bundle.records, reference_date, lookahead_days
    )
    return {
        "child_id": child_id,
        "reference_date": reference_date,
        "upcoming": upcoming,
        "count": len(upcoming)
    }


@router.get("/{child_id}/status")
def get_schedule_status(
    child_id: int,
    reference_date: Optional[date] = Query(None, description="Defaults to today"),
    repository: ImmunizationRepository = Depends(get_repository),
    engine: ImmunizationEngine = Depends(get_engine)
):
    """Completion percentage and overall esquema status"""
    bundle = repository.get_child_with_history(child_id)
    return engine.projector.status_report(bundle.child, bundle.records, reference_date or date.today())


@router.get("/{child_id}/history", response_model=VaccinationHistory)
def get_vaccination_history(
    child_id: int,
    reference_date: Optional[date] = Query(None, description="Defaults to today"),
    service: VaccinationService = Depends(get_service)
):
    """Applied, pending and upcoming doses with the status report"""
    return service.vaccination_history(child_id, reference_date)


@router.get("/{child_id}/notifications")
def get_child_notifications(
    child_id: int,
    state: Optional[NotificationState] = Query(None),
    type: Optional[NotificationType] = Query(None),
    repository: ImmunizationRepository = Depends(get_repository)
):
    """Notifications of a child in display order"""
    repository.get_child(child_id)
    notifications = sort_for_display(repository.notifications_for_child(child_id, state, type))
    return {
        "child_id": child_id,
        "notifications": notifications,
        "statistics": notification_statistics(notifications)
    }
