from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Any
import shutil
import threading
from uuid import uuid4

import yaml

from .booking import BookingRejected, Reservation, build_candidate_interval, ensure_bookable

RESOURCES = [
    ("Besprechungsraum", "Besprechungsraum"),
    ("Firmenwagen", "Firmenwagen (BMW)"),
    ("Beamer", "Beamer / Projektor"),
    ("Zoom", "Zoom Account (Pro)"),
]
RESOURCE_NAMES = [name for name, _label in RESOURCES]


@dataclass(frozen=True)
class BookingRecord:
    reservation_id: str
    resource_name: str
    title: str
    start_time: datetime
    end_time: datetime
    owner: str
    created_at: datetime

    def to_dict(self) -> dict[str, str]:
        return {
            "reservation_id": self.reservation_id,
            "resource_name": self.resource_name,
            "title": self.title,
            "start_time": self.start_time.isoformat(timespec="minutes"),
            "end_time": self.end_time.isoformat(timespec="minutes"),
            "owner": self.owner,
            "created_at": self.created_at.isoformat(timespec="seconds"),
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "BookingRecord":
        return BookingRecord(
            reservation_id=str(data["reservation_id"]),
            resource_name=str(data["resource_name"]),
            title=str(data.get("title") or ""),
            start_time=datetime.fromisoformat(str(data["start_time"])),
            end_time=datetime.fromisoformat(str(data["end_time"])),
            owner=str(data["owner"]),
            created_at=datetime.fromisoformat(str(data["created_at"])),
        )


class BookingStorageError(RuntimeError):
    pass


class BookingNotFound(LookupError):
    pass


class BookingPermissionError(PermissionError):
    pass


class BookingYamlRepository:
    """Bookings persisted as YAML lists under ``base_dir``.

    ``create`` is the authoritative overlap check: it re-validates against the
    stored bookings while holding the repository lock, so two submissions that
    both passed against a stale snapshot cannot both be written. The lock only
    covers one process.
    """

    def __init__(self, base_dir: str | Path = "data") -> None:
        self.base_dir = Path(base_dir)
        self.active_file = self.base_dir / "active_bookings.yaml"
        self.cancelled_file = self.base_dir / "cancelled_bookings.yaml"
        self.log_file = self.base_dir / "booking_events.yaml"
        self._lock = threading.Lock()
        self._ensure_files()

    def _ensure_files(self) -> None:
        self.base_dir.mkdir(parents=True, exist_ok=True)
        for path in (self.active_file, self.cancelled_file, self.log_file):
            if not path.exists():
                path.write_text("[]\n", encoding="utf-8")

    def _read_yaml_list(self, path: Path) -> list[dict[str, Any]]:
        try:
            payload = yaml.safe_load(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            path.write_text("[]\n", encoding="utf-8")
            return []
        except (OSError, UnicodeDecodeError, yaml.YAMLError) as error:
            self._recover_corrupted_yaml(path, error)
            return []

        if payload is None:
            return []
        if not isinstance(payload, list):
            self._recover_corrupted_yaml(path, ValueError("top-level YAML is not a list"))
            return []

        sanitized: list[dict[str, Any]] = []
        for index, row in enumerate(payload):
            if isinstance(row, dict):
                sanitized.append(row)
            elif path != self.log_file:
                self._log_event(
                    "YAML_ROW_SKIPPED",
                    {
                        "file": str(path.name),
                        "index": index,
                        "reason": "row is not a mapping",
                    },
                )
        return sanitized

    def _write_yaml_list(self, path: Path, rows: list[dict[str, Any]]) -> None:
        temp_path = path.with_suffix(path.suffix + ".tmp")
        try:
            temp_path.write_text(yaml.safe_dump(rows, allow_unicode=True, sort_keys=False), encoding="utf-8")
            temp_path.replace(path)
        except OSError as error:
            raise BookingStorageError(f"Failed to write YAML file: {path}") from error
        finally:
            if temp_path.exists():
                temp_path.unlink(missing_ok=True)

    def _recover_corrupted_yaml(self, path: Path, error: Exception) -> None:
        timestamp = datetime.now().strftime("%Y%m%d%H%M%S")
        backup_path = path.with_name(f"{path.stem}.corrupt.{timestamp}{path.suffix}")
        if path.exists():
            try:
                shutil.copy2(path, backup_path)
            except OSError as copy_error:
                raise BookingStorageError(f"Failed to back up corrupted YAML file: {path}") from copy_error

        path.write_text("[]\n", encoding="utf-8")
        if path != self.log_file:
            self._log_event(
                "YAML_RECOVERED",
                {
                    "file": str(path.name),
                    "backup": str(backup_path.name),
                    "reason": str(error),
                },
            )

    def _log_event(self, event_type: str, payload: dict[str, Any], event_time: datetime | None = None) -> None:
        timestamp = (event_time or datetime.now()).isoformat(timespec="seconds")
        events = self._read_yaml_list(self.log_file)
        events.append({"event_time": timestamp, "event_type": event_type, "payload": payload})
        self._write_yaml_list(self.log_file, events)

    def _read_records(self, path: Path) -> list[BookingRecord]:
        records: list[BookingRecord] = []
        for index, row in enumerate(self._read_yaml_list(path)):
            try:
                records.append(BookingRecord.from_dict(row))
            except (KeyError, TypeError, ValueError) as error:
                self._log_event(
                    "YAML_ROW_SKIPPED",
                    {
                        "file": str(path.name),
                        "index": index,
                        "reason": f"malformed booking row: {error!r}",
                    },
                )
        return records

    def log_rejection(self, reservation: Reservation, reason: str, now: datetime | None = None) -> None:
        self._log_event(
            "BOOKING_REJECTED",
            {
                "resource_name": reservation.resource_name,
                "start_time": reservation.start_time.isoformat(timespec="minutes"),
                "end_time": reservation.end_time.isoformat(timespec="minutes"),
                "owner": reservation.owner,
                "reason": reason,
            },
            now,
        )

    def get_active_bookings(self) -> list[BookingRecord]:
        return self._read_records(self.active_file)

    def get_cancelled_bookings(self) -> list[BookingRecord]:
        return self._read_records(self.cancelled_file)

    def get(self, reservation_id: str) -> BookingRecord | None:
        for record in self.get_active_bookings():
            if record.reservation_id == reservation_id:
                return record
        return None

    def list_day(self, day: date) -> list[BookingRecord]:
        day_start, day_end = _day_bounds(day)
        records = [
            record
            for record in self.get_active_bookings()
            if record.start_time < day_end and day_start < record.end_time
        ]
        return sorted(records, key=lambda record: (record.start_time, record.resource_name))

    def list_reservations(self, resource_name: str, day: date) -> list[BookingRecord]:
        return [record for record in self.list_day(day) if record.resource_name == resource_name]

    def create(self, reservation: Reservation, now: datetime | None = None) -> BookingRecord:
        if not reservation.owner:
            raise ValueError("owner must not be empty")

        effective_now = now or datetime.now()
        with self._lock:
            same_resource = [
                record for record in self.get_active_bookings() if record.resource_name == reservation.resource_name
            ]
            try:
                ensure_bookable(reservation, same_resource)
            except BookingRejected as error:
                self.log_rejection(reservation, error.reason, effective_now)
                raise

            record = BookingRecord(
                reservation_id=str(uuid4()),
                resource_name=reservation.resource_name,
                title=reservation.title,
                start_time=reservation.start_time,
                end_time=reservation.end_time,
                owner=reservation.owner,
                created_at=effective_now.replace(microsecond=0),
            )
            rows = self._read_yaml_list(self.active_file)
            rows.append(record.to_dict())
            self._write_yaml_list(self.active_file, rows)

            self._log_event(
                "BOOKING_CREATED",
                {
                    "reservation_id": record.reservation_id,
                    "resource_name": record.resource_name,
                    "start_time": record.start_time.isoformat(timespec="minutes"),
                    "end_time": record.end_time.isoformat(timespec="minutes"),
                    "owner": record.owner,
                    "title": record.title,
                },
                effective_now,
            )
        return record

    def cancel(
        self,
        reservation_id: str,
        requested_by: str,
        *,
        is_admin: bool = False,
        now: datetime | None = None,
    ) -> BookingRecord:
        effective_now = now or datetime.now()
        with self._lock:
            rows = self._read_yaml_list(self.active_file)
            found_index = -1
            for index, row in enumerate(rows):
                if str(row.get("reservation_id")) == reservation_id:
                    found_index = index
                    break

            if found_index < 0:
                raise BookingNotFound(f"Booking {reservation_id} not found.")

            try:
                record = BookingRecord.from_dict(rows[found_index])
            except (KeyError, TypeError, ValueError) as error:
                raise BookingStorageError(f"Stored booking {reservation_id} is malformed.") from error
            if record.owner != requested_by and not is_admin:
                raise BookingPermissionError("Only the owner or an administrator may cancel this booking.")

            del rows[found_index]
            # Append to the cancelled file before removing from the active one.
            cancelled_rows = self._read_yaml_list(self.cancelled_file)
            cancelled_rows.append(record.to_dict())
            self._write_yaml_list(self.cancelled_file, cancelled_rows)
            self._write_yaml_list(self.active_file, rows)

            self._log_event(
                "BOOKING_CANCELLED",
                {
                    "reservation_id": record.reservation_id,
                    "resource_name": record.resource_name,
                    "cancelled_by": requested_by,
                    "by_admin": record.owner != requested_by,
                },
                effective_now,
            )
        return record


def submit_booking(
    repository: BookingYamlRepository,
    resource_name: str,
    title: str,
    day: date,
    start_text: str,
    end_text: str,
    owner: str,
    now: datetime | None = None,
) -> BookingRecord:
    resource_name = _normalize_resource_name(resource_name)
    title = (title or "").strip()
    if not title:
        raise ValueError("title must not be empty")
    if not owner or not owner.strip():
        raise ValueError("owner must not be empty")

    start, end = build_candidate_interval(day, start_text, end_text)
    candidate = Reservation(
        resource_name=resource_name,
        start_time=start,
        end_time=end,
        title=title,
        owner=owner.strip(),
    )

    try:
        ensure_bookable(candidate, repository.list_reservations(resource_name, day))
    except BookingRejected as error:
        repository.log_rejection(candidate, error.reason, now)
        raise
    return repository.create(candidate, now=now)


def _normalize_resource_name(resource_name: str | None) -> str:
    if resource_name is None:
        raise ValueError("resource_name must not be None")

    normalized = resource_name.strip()
    if not normalized:
        raise ValueError("resource_name must not be empty")
    if normalized not in RESOURCE_NAMES:
        raise ValueError(f"Unknown resource {normalized!r}. Expected one of: {', '.join(RESOURCE_NAMES)}")
    return normalized


def _day_bounds(day: date) -> tuple[datetime, datetime]:
    start = datetime(day.year, day.month, day.day)
    return start, start + timedelta(days=1)
