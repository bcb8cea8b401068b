"""
ImmunoTrack - Vaccination API Routes
Dose validation, recording and adverse reaction reports
"""

import logging
from datetime import date
from typing import Optional
from fastapi import APIRouter, Depends, Query, Response, status

from immunotrack.routes.dependencies import get_service
from immunotrack.schemas import (
    DoseApplication, ReactionReport, ReactionResult, RecordingResult
)
from immunotrack.services.vaccination import VaccinationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/vaccinations", tags=["Vaccinations"])


@router.post("/validate")
def validate_dose(
    application: DoseApplication,
    reference_date: Optional[date] = Query(None, description="Defaults to today"),
    service: VaccinationService = Depends(get_service)
):
    """Check whether a dose may be recorded without storing it"""
    decision = service.validate(application, reference_date)
    return {"decision": decision}


@router.post("", response_model=RecordingResult)
def record_dose(
    application: DoseApplication,
    response: Response,
    override_warning: bool = Query(False, description="Record despite a warning"),
    reference_date: Optional[date] = Query(None, description="Defaults to today"),
    service: VaccinationService = Depends(get_service)
):
    """Validate and record a dose; 201 when stored, 200 with the decision otherwise"""
    logger.info(
        f"Recording dose {application.dose_number} of vaccine {application.vaccine_id} "
        f"for child {application.child_id}"
    )
    result = service.record_dose(application, override_warning, reference_date)
    if result.recorded:
        response.status_code = status.HTTP_201_CREATED
    return result


@router.post("/{record_id}/reaction", response_model=ReactionResult)
def report_reaction(
    record_id: int,
    report: ReactionReport,
    reference_date: Optional[date] = Query(None, description="Defaults to today"),
    service: VaccinationService = Depends(get_service)
):
    """Attach an adverse reaction; severe ones raise an urgent notification"""
    logger.info(f"Adverse reaction ({report.severity.value}) reported for record {record_id}")
    return service.report_reaction(record_id, report.severity, report.description, reference_date)
