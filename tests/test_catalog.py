"""
Unit tests for the schedule catalog
"""

import pytest

from immunotrack.config import ScheduleTunables
from immunotrack.errors import CatalogIntegrityError, VaccineNotFoundError
from immunotrack.modules.catalog import (
    NATIONAL_SCHEDULE, NATIONAL_VACCINES, ScheduleCatalog, plan_schedule_seed,
    plan_vaccine_seed
)
from immunotrack.schemas import ScheduleEntry, Vaccine

from conftest import BCG_ID, PENTA_ID, RETIRED_ID


class TestCatalogIntegrity:
    """Test structural validation at construction"""

    def test_national_schedule_is_valid(self, national_catalog):
        assert len(national_catalog) == len(NATIONAL_SCHEDULE)

    def test_unknown_vaccine_rejected(self, bcg):
        with pytest.raises(CatalogIntegrityError, match="unknown vaccine"):
            ScheduleCatalog([bcg], [ScheduleEntry(vaccine_id=99, dose_number=1, target_age_days=0)])

    def test_non_contiguous_doses_rejected(self, penta):
        """Test that a gap in dose numbers fails the load"""
        entries = [
            ScheduleEntry(vaccine_id=PENTA_ID, dose_number=1, target_age_days=60),
            ScheduleEntry(vaccine_id=PENTA_ID, dose_number=3, target_age_days=180),
        ]
        with pytest.raises(CatalogIntegrityError, match="do not form"):
            ScheduleCatalog([penta], entries)

    def test_doses_must_match_total(self, penta):
        entries = [ScheduleEntry(vaccine_id=PENTA_ID, dose_number=1, target_age_days=60)]
        with pytest.raises(CatalogIntegrityError):
            ScheduleCatalog([penta], entries)

    def test_decreasing_ages_rejected(self):
        vaccine = Vaccine(id=1, code="X", name="X", total_doses=2)
        entries = [
            ScheduleEntry(vaccine_id=1, dose_number=1, target_age_days=120),
            ScheduleEntry(vaccine_id=1, dose_number=2, target_age_days=60),
        ]
        with pytest.raises(CatalogIntegrityError, match="earlier age"):
            ScheduleCatalog([vaccine], entries)

    def test_duplicate_entry_rejected(self, bcg):
        entry = ScheduleEntry(vaccine_id=BCG_ID, dose_number=1, target_age_days=0)
        with pytest.raises(CatalogIntegrityError, match="Duplicate"):
            ScheduleCatalog([bcg], [entry, entry])

    def test_entry_bounds_validated(self):
        with pytest.raises(ValueError):
            ScheduleEntry(vaccine_id=1, dose_number=1, target_age_days=60, min_age_days=90)


class TestCatalogQueries:
    """Test catalog lookups"""

    def test_entries_for_vaccine_ordered_by_dose(self, small_catalog):
        doses = [e.dose_number for e in small_catalog.entries_for_vaccine(PENTA_ID)]
        assert doses == [1, 2, 3]

    def test_entries_for_age(self, small_catalog):
        keys = [e.key for e in small_catalog.entries_for_age(61)]
        assert keys == [(BCG_ID, 1), (RETIRED_ID, 1), (PENTA_ID, 1)]

    def test_entries_in_age_range(self, small_catalog):
        keys = [e.key for e in small_catalog.entries_in_age_range(60, 120)]
        assert keys == [(PENTA_ID, 1), (PENTA_ID, 2)]
        assert small_catalog.entries_in_age_range(120, 60) == []

    def test_entries_at_exact_age(self, national_catalog):
        codes = {national_catalog.vaccine(e.vaccine_id).code for e in national_catalog.entries_at_exact_age(0)}
        assert codes == {"BCG", "HB"}

    def test_ordering_breaks_ties_by_vaccine_name(self, national_catalog):
        names = [
            national_catalog.vaccine(e.vaccine_id).name
            for e in national_catalog.entries_at_exact_age(60)
        ]
        assert names == sorted(names)

    def test_boosters(self, national_catalog):
        assert national_catalog.boosters()
        assert all(e.is_booster for e in national_catalog.boosters())

    def test_next_entries_limit(self, national_catalog):
        entries = national_catalog.next_entries(61, limit=3)
        assert len(entries) == 3
        assert all(e.target_age_days >= 61 for e in entries)

    def test_unknown_vaccine_lookup(self, small_catalog):
        with pytest.raises(VaccineNotFoundError):
            small_catalog.vaccine(999)

    def test_vaccines_hide_inactive(self, small_catalog):
        assert RETIRED_ID not in [v.id for v in small_catalog.vaccines()]
        assert RETIRED_ID in [v.id for v in small_catalog.vaccines(include_inactive=True)]


class TestWindows:
    """Test application windows"""

    def test_default_window(self, small_catalog):
        entry = small_catalog.entry(PENTA_ID, 1)
        assert small_catalog.window_for(entry) == (46, 90)
        assert small_catalog.tolerance_for(entry) == 30

    def test_window_clamped_at_birth(self, small_catalog):
        assert small_catalog.window_for(small_catalog.entry(BCG_ID, 1)) == (0, 30)

    def test_explicit_bounds_win(self, national_catalog):
        rota = next(v for v in NATIONAL_VACCINES if v.code == "ROTA")
        entry = national_catalog.entry(rota.id, 1)
        assert national_catalog.window_for(entry) == (42, 105)
        assert national_catalog.tolerance_for(entry) == 45

    def test_tunables_drive_defaults(self, bcg):
        catalog = ScheduleCatalog(
            [bcg],
            [ScheduleEntry(vaccine_id=BCG_ID, dose_number=1, target_age_days=0)],
            ScheduleTunables(tolerance_days=10)
        )
        assert catalog.window_for(catalog.entry(BCG_ID, 1)) == (0, 10)


class TestCatalogMaintenance:
    """Test immutable updates and statistics"""

    def test_deactivate_entry_returns_new_catalog(self, small_catalog):
        updated = small_catalog.with_entry_active(PENTA_ID, 2, False)
        assert updated.entry(PENTA_ID, 2) is None
        assert updated.entry(PENTA_ID, 2, include_inactive=True) is not None
        assert small_catalog.entry(PENTA_ID, 2) is not None

    def test_deactivate_unknown_entry(self, small_catalog):
        with pytest.raises(CatalogIntegrityError):
            small_catalog.with_entry_active(PENTA_ID, 9, False)

    def test_statistics(self, national_catalog):
        stats = national_catalog.statistics()
        assert stats["total_entries"] == len(NATIONAL_SCHEDULE)
        assert stats["boosters"] + stats["regular_doses"] == stats["total_entries"]
        assert stats["by_age"]["Al nacer"] == 2


class TestSeedPlanning:
    """Test one-time seeding plans"""

    def test_empty_storage_gets_full_schedule(self):
        assert plan_schedule_seed([]) == list(NATIONAL_SCHEDULE)

    def test_existing_entries_make_seed_a_no_op(self):
        assert plan_schedule_seed([NATIONAL_SCHEDULE[0]]) == []

    def test_vaccine_seed_matches_by_code(self):
        existing = [Vaccine(id=500, code="BCG", name="BCG local", total_doses=1)]
        planned = plan_vaccine_seed(existing)
        assert "BCG" not in [v.code for v in planned]
        assert len(planned) == len(NATIONAL_VACCINES) - 1
