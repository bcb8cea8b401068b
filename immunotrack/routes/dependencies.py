"""
ImmunoTrack - Route Dependencies
Per-request repository and service wiring over the engine on app.state
"""

from typing import Iterator

from fastapi import Depends, Request

from immunotrack.engine import ImmunizationEngine
from immunotrack.services.repository import ImmunizationRepository
from immunotrack.services.vaccination import VaccinationService


def get_repository(request: Request) -> Iterator[ImmunizationRepository]:
    with request.app.state.session_factory() as session:
        yield ImmunizationRepository(session)


def get_engine(request: Request) -> ImmunizationEngine:
    return request.app.state.engine


def get_service(
    repository: ImmunizationRepository = Depends(get_repository),
    engine: ImmunizationEngine = Depends(get_engine)
) -> VaccinationService:
    return VaccinationService(repository, engine)
