"""
ImmunoTrack Schedule Catalog
National esquema knowledge: which vaccine doses apply at which age
"""

import logging
from collections import Counter, defaultdict
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from immunotrack.config import ScheduleTunables
from immunotrack.errors import CatalogIntegrityError, VaccineNotFoundError
from immunotrack.modules.dates import describe_age
from immunotrack.schemas import ScheduleEntry, Vaccine

logger = logging.getLogger(__name__)


# =============================================================================
# Common Ages (days from birth)
# =============================================================================

AGE_AT_BIRTH = 0
AGE_2_MONTHS = 60
AGE_4_MONTHS = 120
AGE_6_MONTHS = 180
AGE_7_MONTHS = 210
AGE_12_MONTHS = 365
AGE_18_MONTHS = 540
AGE_4_YEARS = 1460

STANDARD_DOSE_INTERVAL = 28


# =============================================================================
# National Schedule Seed
# =============================================================================

NATIONAL_VACCINES: Tuple[Vaccine, ...] = (
    Vaccine(id=1, code="BCG", name="BCG", total_doses=1,
            description="Tuberculosis"),
    Vaccine(id=2, code="HB", name="Hepatitis B", total_doses=1,
            description="Hepatitis B pediátrica, dosis al nacer"),
    Vaccine(id=3, code="ROTA", name="Rotavirus", total_doses=2,
            description="Rotavirus oral"),
    Vaccine(id=4, code="IPV", name="Polio IPV", total_doses=2,
            description="Poliomielitis inactivada"),
    Vaccine(id=5, code="NEUMO", name="Neumococo", total_doses=3,
            description="Neumococo conjugada"),
    Vaccine(id=6, code="PENTA", name="Pentavalente", total_doses=3,
            description="DPT + HB + Hib"),
    Vaccine(id=7, code="OPV", name="Polio OPV", total_doses=3,
            description="Poliomielitis oral bivalente"),
    Vaccine(id=8, code="INFLU", name="Influenza", total_doses=2,
            description="Influenza estacional pediátrica"),
    Vaccine(id=9, code="SRP", name="SRP", total_doses=2,
            description="Sarampión, rubéola y parotiditis"),
    Vaccine(id=10, code="FA", name="Fiebre Amarilla", total_doses=1,
            description="Fiebre amarilla"),
    Vaccine(id=11, code="VARI", name="Varicela", total_doses=1,
            description="Varicela"),
)


def _entry(vaccine_id: int, dose: int, age: int, **kwargs) -> ScheduleEntry:
    kwargs.setdefault("age_description", describe_age(age))
    if dose > 1:
        kwargs.setdefault("min_interval_days", STANDARD_DOSE_INTERVAL)
    return ScheduleEntry(vaccine_id=vaccine_id, dose_number=dose, target_age_days=age, **kwargs)


NATIONAL_SCHEDULE: Tuple[ScheduleEntry, ...] = (
    # Al nacer
    _entry(1, 1, AGE_AT_BIRTH, notes="BCG - Tuberculosis"),
    _entry(2, 1, AGE_AT_BIRTH, notes="Hepatitis B - Primera dosis"),

    # 2 meses
    _entry(3, 1, AGE_2_MONTHS, min_age_days=42, max_age_days=105, notes="Rotavirus - Primera dosis"),
    _entry(4, 1, AGE_2_MONTHS, notes="Polio IPV - Primera dosis"),
    _entry(5, 1, AGE_2_MONTHS, notes="Neumococo - Primera dosis"),
    _entry(6, 1, AGE_2_MONTHS, notes="Pentavalente - Primera dosis"),

    # 4 meses
    _entry(3, 2, AGE_4_MONTHS, min_age_days=90, max_age_days=240, notes="Rotavirus - Segunda dosis"),
    _entry(4, 2, AGE_4_MONTHS, notes="Polio IPV - Segunda dosis"),
    _entry(5, 2, AGE_4_MONTHS, notes="Neumococo - Segunda dosis"),
    _entry(6, 2, AGE_4_MONTHS, notes="Pentavalente - Segunda dosis"),

    # 6 meses
    _entry(6, 3, AGE_6_MONTHS, notes="Pentavalente - Tercera dosis"),
    _entry(7, 1, AGE_6_MONTHS, notes="Polio OPV - Primera dosis"),
    _entry(8, 1, AGE_6_MONTHS, is_mandatory=False, notes="Influenza - Primera dosis"),

    # 7 meses
    _entry(8, 2, AGE_7_MONTHS, is_mandatory=False, notes="Influenza - Segunda dosis"),

    # 12 meses
    _entry(5, 3, AGE_12_MONTHS, is_booster=True, notes="Neumococo - Refuerzo"),
    _entry(9, 1, AGE_12_MONTHS, notes="SRP - Primera dosis"),
    _entry(10, 1, AGE_12_MONTHS, notes="Fiebre Amarilla - Dosis única"),

    # 18 meses
    _entry(7, 2, AGE_18_MONTHS, is_booster=True, notes="Polio OPV - Primer refuerzo"),
    _entry(9, 2, AGE_18_MONTHS, is_booster=True, notes="SRP - Segunda dosis (refuerzo)"),
    _entry(11, 1, AGE_18_MONTHS, notes="Varicela - Dosis única"),

    # 4 años
    _entry(7, 3, AGE_4_YEARS, is_booster=True, notes="Polio OPV - Segundo refuerzo"),
)


# =============================================================================
# Catalog
# =============================================================================

class ScheduleCatalog:
    """
    Immutable, validated view over vaccines and their schedule entries.

    All queries restrict to active entries unless include_inactive is set.
    Construction fails with CatalogIntegrityError on malformed data.
    """

    def __init__(
        self,
        vaccines: Iterable[Vaccine],
        entries: Iterable[ScheduleEntry],
        tunables: Optional[ScheduleTunables] = None
    ):
        self.tunables = tunables or ScheduleTunables()
        self._vaccines: Dict[int, Vaccine] = {}
        for vaccine in vaccines:
            if vaccine.id in self._vaccines:
                raise CatalogIntegrityError(f"Duplicate vaccine id {vaccine.id}")
            self._vaccines[vaccine.id] = vaccine

        self._entries: Tuple[ScheduleEntry, ...] = tuple(entries)
        self._by_vaccine: Dict[int, Tuple[ScheduleEntry, ...]] = {}
        self._validate()

        logger.debug(
            f"Schedule catalog loaded: {len(self._vaccines)} vaccines, {len(self._entries)} entries"
        )

    def _validate(self):
        """Check dose contiguity and age ordering per vaccine"""
        grouped: Dict[int, List[ScheduleEntry]] = defaultdict(list)
        seen = set()

        for entry in self._entries:
            if entry.vaccine_id not in self._vaccines:
                raise CatalogIntegrityError(
                    f"Schedule entry references unknown vaccine {entry.vaccine_id}"
                )
            if entry.key in seen:
                raise CatalogIntegrityError(
                    f"Duplicate schedule entry for vaccine {entry.vaccine_id} dose {entry.dose_number}"
                )
            seen.add(entry.key)
            grouped[entry.vaccine_id].append(entry)

        for vaccine_id, vaccine_entries in grouped.items():
            vaccine_entries.sort(key=lambda e: e.dose_number)
            vaccine = self._vaccines[vaccine_id]

            doses = [e.dose_number for e in vaccine_entries]
            expected = list(range(1, vaccine.total_doses + 1))
            if doses != expected:
                raise CatalogIntegrityError(
                    f"Vaccine {vaccine.code} doses {doses} do not form 1..{vaccine.total_doses}"
                )

            for previous, current in zip(vaccine_entries, vaccine_entries[1:]):
                if current.target_age_days < previous.target_age_days:
                    raise CatalogIntegrityError(
                        f"Vaccine {vaccine.code} dose {current.dose_number} targets an earlier "
                        f"age than dose {previous.dose_number}"
                    )

            self._by_vaccine[vaccine_id] = tuple(vaccine_entries)

    # -------------------------------------------------------------------------
    # Vaccines
    # -------------------------------------------------------------------------

    def vaccine(self, vaccine_id: int) -> Vaccine:
        """Get vaccine by id, raising VaccineNotFoundError if unknown"""
        try:
            return self._vaccines[vaccine_id]
        except KeyError:
            raise VaccineNotFoundError(vaccine_id) from None

    def has_vaccine(self, vaccine_id: int) -> bool:
        return vaccine_id in self._vaccines

    def vaccines(self, include_inactive: bool = False) -> List[Vaccine]:
        return sorted(
            (v for v in self._vaccines.values() if include_inactive or v.active),
            key=lambda v: v.name
        )

    # -------------------------------------------------------------------------
    # Entry Queries
    # -------------------------------------------------------------------------

    def _ordered(self, entries: Iterable[ScheduleEntry]) -> List[ScheduleEntry]:
        """Order by target age, then vaccine name, then dose"""
        return sorted(
            entries,
            key=lambda e: (e.target_age_days, self._vaccines[e.vaccine_id].name, e.dose_number)
        )

    def _visible(self, include_inactive: bool) -> Iterable[ScheduleEntry]:
        return (e for e in self._entries if include_inactive or e.active)

    def all_entries(self, include_inactive: bool = False) -> List[ScheduleEntry]:
        return self._ordered(self._visible(include_inactive))

    def entries_for_vaccine(self, vaccine_id: int, include_inactive: bool = False) -> List[ScheduleEntry]:
        """Entries of one vaccine ordered by dose number"""
        return [
            e for e in self._by_vaccine.get(vaccine_id, ())
            if include_inactive or e.active
        ]

    def entries_for_age(self, age_days: int, include_inactive: bool = False) -> List[ScheduleEntry]:
        """Entries whose target age has been reached"""
        return self._ordered(
            e for e in self._visible(include_inactive) if e.target_age_days <= age_days
        )

    def entries_in_age_range(
        self,
        min_age_days: int,
        max_age_days: int,
        include_inactive: bool = False
    ) -> List[ScheduleEntry]:
        """Entries with target age inside [min_age_days, max_age_days]"""
        if min_age_days > max_age_days:
            return []
        return self._ordered(
            e for e in self._visible(include_inactive)
            if min_age_days <= e.target_age_days <= max_age_days
        )

    def entries_at_exact_age(self, age_days: int, include_inactive: bool = False) -> List[ScheduleEntry]:
        return self._ordered(
            e for e in self._visible(include_inactive) if e.target_age_days == age_days
        )

    def boosters(self, include_inactive: bool = False) -> List[ScheduleEntry]:
        return self._ordered(e for e in self._visible(include_inactive) if e.is_booster)

    def next_entries(self, age_days: int, limit: int = 5) -> List[ScheduleEntry]:
        """Next scheduled entries from the given age on"""
        upcoming = self._ordered(e for e in self._visible(False) if e.target_age_days >= age_days)
        return upcoming[:max(0, limit)]

    def entry(self, vaccine_id: int, dose_number: int, include_inactive: bool = False) -> Optional[ScheduleEntry]:
        for e in self._by_vaccine.get(vaccine_id, ()):
            if e.dose_number == dose_number and (include_inactive or e.active):
                return e
        return None

    # -------------------------------------------------------------------------
    # Windows
    # -------------------------------------------------------------------------

    def window_for(self, entry: ScheduleEntry) -> Tuple[int, int]:
        """
        Application window in days of age

        Explicit min/max bounds win; otherwise the default anticipation and
        tolerance are applied around the target age.
        """
        start = entry.min_age_days
        if start is None:
            start = max(0, entry.target_age_days - self.tunables.anticipation_days)
        end = entry.max_age_days
        if end is None:
            end = entry.target_age_days + self.tunables.tolerance_days
        return start, end

    def tolerance_for(self, entry: ScheduleEntry) -> int:
        """Days past the target age before the dose counts as overdue"""
        return self.window_for(entry)[1] - entry.target_age_days

    # -------------------------------------------------------------------------
    # Maintenance
    # -------------------------------------------------------------------------

    def with_entry_active(self, vaccine_id: int, dose_number: int, active: bool) -> "ScheduleCatalog":
        """Return a new catalog with one entry activated or deactivated"""
        if self.entry(vaccine_id, dose_number, include_inactive=True) is None:
            raise CatalogIntegrityError(
                f"No schedule entry for vaccine {vaccine_id} dose {dose_number}"
            )
        entries = [
            e.model_copy(update={"active": active}) if e.key == (vaccine_id, dose_number) else e
            for e in self._entries
        ]
        logger.info(
            f"Schedule entry vaccine {vaccine_id} dose {dose_number} "
            f"{'activated' if active else 'deactivated'}"
        )
        return ScheduleCatalog(self._vaccines.values(), entries, self.tunables)

    def statistics(self) -> Dict[str, object]:
        """Entry counts overall and per age label"""
        active = self.all_entries()
        by_age = Counter(describe_age(e.target_age_days) for e in active)
        return {
            "total_entries": len(active),
            "inactive_entries": len(self._entries) - len(active),
            "boosters": len([e for e in active if e.is_booster]),
            "regular_doses": len([e for e in active if not e.is_booster]),
            "mandatory": len([e for e in active if e.is_mandatory]),
            "by_age": dict(by_age),
        }

    def __len__(self) -> int:
        return len(self._entries)


# =============================================================================
# Seeding
# =============================================================================

def plan_vaccine_seed(existing: Sequence[Vaccine]) -> List[Vaccine]:
    """National vaccines missing from storage, matched by code"""
    existing_codes = {v.code for v in existing}
    return [v for v in NATIONAL_VACCINES if v.code not in existing_codes]


def plan_schedule_seed(existing: Sequence[ScheduleEntry]) -> List[ScheduleEntry]:
    """
    Entries to insert when seeding the national esquema

    Seeding is one-time: when any entry already exists the plan is empty,
    so concurrent or repeated initialization is a no-op.
    """
    if existing:
        logger.info("Schedule already seeded; skipping initialization")
        return []
    logger.info(f"Seeding national schedule with {len(NATIONAL_SCHEDULE)} entries")
    return list(NATIONAL_SCHEDULE)


def build_national_catalog(tunables: Optional[ScheduleTunables] = None) -> ScheduleCatalog:
    """Catalog built straight from the national seed"""
    return ScheduleCatalog(NATIONAL_VACCINES, NATIONAL_SCHEDULE, tunables)
