"""Error taxonomy for slot scheduling and reminder delivery."""


class SchedulingError(Exception):
    """Base class for scheduling failures."""


class InvalidRange(SchedulingError):
    """The requested date range ends before it starts."""


class InvalidTimeZone(SchedulingError):
    """The configured business timezone identifier is unknown."""


class ConfigurationError(SchedulingError):
    """Startup configuration is unusable."""


class SlotNotFound(SchedulingError):
    pass


class SlotUnavailable(SchedulingError):
    """The slot exists but cannot be booked (archived, past, or on a closed date)."""


class SlotAlreadyBooked(SchedulingError):
    """Another caller claimed the slot first."""


class PatientNotFound(SchedulingError):
    """The booking names a patient that does not exist."""


class DayOffConflict(SchedulingError):
    pass


class DayOffNotFound(SchedulingError):
    pass


class NotificationDeliveryFailed(SchedulingError):
    pass


class StorageUnavailable(SchedulingError):
    """The store could not be reached, or a write has an unknown outcome."""
