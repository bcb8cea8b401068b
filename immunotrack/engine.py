"""
ImmunoTrack - Engine Container
Wires the catalog, validator, projector and scheduler together
"""

import logging

from immunotrack.modules.catalog import ScheduleCatalog
from immunotrack.modules.eligibility import EligibilityValidator
from immunotrack.modules.notifications import NotificationScheduler
from immunotrack.modules.projection import ScheduleProjector

logger = logging.getLogger(__name__)


class ImmunizationEngine:
    """Stateless engine components built once over a single catalog"""

    def __init__(self, catalog: ScheduleCatalog):
        self.catalog = catalog
        self.validator = EligibilityValidator(catalog)
        self.projector = ScheduleProjector(catalog)
        self.scheduler = NotificationScheduler(self.projector)
        logger.info(f"Immunization engine ready ({len(catalog)} schedule entries)")

    @property
    def tunables(self):
        return self.catalog.tunables
