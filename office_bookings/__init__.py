from .booking import (
	REASON_CONFLICT,
	REASON_ORDERING,
	BookingDecision,
	BookingRejected,
	Reservation,
	build_candidate_interval,
	ensure_bookable,
	has_time_overlap,
	validate_booking,
)
from .yaml_store import (
	RESOURCE_NAMES,
	BookingNotFound,
	BookingPermissionError,
	BookingRecord,
	BookingStorageError,
	BookingYamlRepository,
	submit_booking,
)

__all__ = [
	"REASON_CONFLICT",
	"REASON_ORDERING",
	"BookingDecision",
	"BookingRejected",
	"Reservation",
	"build_candidate_interval",
	"ensure_bookable",
	"has_time_overlap",
	"validate_booking",
	"RESOURCE_NAMES",
	"BookingNotFound",
	"BookingPermissionError",
	"BookingRecord",
	"BookingStorageError",
	"BookingYamlRepository",
	"submit_booking",
]
