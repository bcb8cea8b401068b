"""Common exception classes."""


class ImmunoTrackError(Exception):
    """Generic exception class which other exceptions should inherit from."""

    error_code = None

    def __init__(self, *args, error_code: str = None, **kwargs):
        """Initialize an ImmunoTrackError instance."""
        super().__init__(*args, **kwargs)
        if error_code:
            self.error_code = error_code


class CatalogIntegrityError(ImmunoTrackError):
    """Schedule catalog is structurally malformed."""

    error_code = "catalog_integrity"


class InvalidDateError(ImmunoTrackError, ValueError):
    """A required date is missing or malformed."""

    error_code = "invalid_date"


class InvalidTransitionError(ImmunoTrackError):
    """Notification state transition is not allowed."""

    error_code = "invalid_transition"


class NotFoundError(ImmunoTrackError):
    """Referenced entity does not exist."""

    error_code = "not_found"

    def __init__(self, entity: str, entity_id, **kwargs):
        """Initialize a NotFoundError for the given entity and id."""
        super().__init__(f"{entity} {entity_id} not found", **kwargs)
        self.entity = entity
        self.entity_id = entity_id


class ChildNotFoundError(NotFoundError):
    """Unknown child id."""

    def __init__(self, child_id):
        super().__init__("Child", child_id)


class VaccineNotFoundError(NotFoundError):
    """Unknown vaccine id."""

    def __init__(self, vaccine_id):
        super().__init__("Vaccine", vaccine_id)


class RecordNotFoundError(NotFoundError):
    """Unknown vaccination record id."""

    def __init__(self, record_id):
        super().__init__("Vaccination record", record_id)


class NotificationNotFoundError(NotFoundError):
    """Unknown notification id."""

    def __init__(self, notification_id):
        super().__init__("Notification", notification_id)
