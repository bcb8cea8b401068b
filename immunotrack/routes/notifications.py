"""
ImmunoTrack - Notification API Routes
"""

import logging
from fastapi import APIRouter, Depends

from immunotrack.routes.dependencies import get_service
from immunotrack.schemas import Notification
from immunotrack.services.vaccination import VaccinationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/notifications", tags=["Notifications"])


@router.post("/{notification_id}/read", response_model=Notification)
def mark_notification_read(
    notification_id: int,
    service: VaccinationService = Depends(get_service)
):
    """Mark a pending or sent notification as read"""
    logger.info(f"Marking notification {notification_id} as read")
    return service.mark_notification_read(notification_id)
