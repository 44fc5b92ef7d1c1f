from __future__ import annotations

from datetime import date, datetime
from pathlib import Path
from typing import Any, Callable, Iterable
import os

import holidays as pyholidays
from flask import Flask, jsonify, request

from .booking import REASON_CONFLICT, REASON_ORDERING, BookingRejected
from .yaml_store import (
    RESOURCES,
    BookingNotFound,
    BookingPermissionError,
    BookingStorageError,
    BookingYamlRepository,
    submit_booking,
)

USER_HEADER = "X-User-Id"
REJECTION_MESSAGES = {
    REASON_ORDERING: "Endzeit muss nach der Startzeit liegen.",
    REASON_CONFLICT: "Dieser Zeitraum ist bereits belegt.",
}
BOOKING_FIELDS = ("resource_name", "title", "date", "start_time", "end_time")
_HOLIDAY_CACHE: dict[tuple[str, int], dict[date, str]] = {}


def create_app(
    data_dir: str | Path = "data",
    now_provider: Callable[[], datetime] | None = None,
    admin_users: Iterable[str] | None = None,
    holiday_country: str = "DE",
) -> Flask:
    app = Flask(__name__)
    repository = BookingYamlRepository(data_dir)
    clock: Callable[[], datetime] = now_provider or datetime.now
    admins = {user.strip() for user in (admin_users or []) if user.strip()}

    def _current_user() -> str | None:
        value = request.headers.get(USER_HEADER, "").strip()
        return value or None

    def _serialize_booking(record: Any, user: str | None) -> dict[str, Any]:
        return {
            "reservation_id": record.reservation_id,
            "resource_name": record.resource_name,
            "title": record.title,
            "start_time": record.start_time.isoformat(timespec="minutes"),
            "end_time": record.end_time.isoformat(timespec="minutes"),
            "owner": record.owner,
            "created_at": record.created_at.isoformat(timespec="seconds"),
            "is_own": user is not None and record.owner == user,
        }

    @app.after_request
    def add_cors_headers(response: Any) -> Any:
        response.headers["Access-Control-Allow-Origin"] = "*"
        response.headers["Access-Control-Allow-Methods"] = "GET,POST,DELETE,OPTIONS"
        response.headers["Access-Control-Allow-Headers"] = f"Content-Type,{USER_HEADER}"
        return response

    @app.get("/api/resources")
    def get_resources() -> Any:
        return jsonify({"ok": True, "resources": [{"resource_name": name, "label": label} for name, label in RESOURCES]})

    @app.get("/api/bookings")
    def get_bookings() -> Any:
        user = _current_user()
        raw_date = request.args.get("date")
        if raw_date:
            try:
                day = date.fromisoformat(raw_date)
            except ValueError:
                return jsonify({"ok": False, "message": "Ungültiges Datum."}), 400
        else:
            day = clock().date()

        records = repository.list_day(day)
        holiday_name = _holiday_name(day, holiday_country)
        return jsonify(
            {
                "ok": True,
                "date": day.isoformat(),
                "is_holiday": holiday_name is not None,
                "holiday_name": holiday_name,
                "resources": [
                    {
                        "resource_name": name,
                        "label": label,
                        "bookings": [
                            _serialize_booking(record, user) for record in records if record.resource_name == name
                        ],
                    }
                    for name, label in RESOURCES
                ],
            }
        )

    @app.post("/api/bookings")
    def create_booking() -> Any:
        user = _current_user()
        if user is None:
            return jsonify({"ok": False, "message": "Anmeldung erforderlich."}), 401

        payload = request.get_json(silent=True)
        if payload is None:
            payload = {}
        if not isinstance(payload, dict):
            return jsonify({"ok": False, "reason": "invalid", "message": "Request body must be a JSON object."}), 400

        try:
            fields = {name: _text_field(payload, name) for name in BOOKING_FIELDS}
        except ValueError as error:
            return jsonify({"ok": False, "reason": "invalid", "message": str(error)}), 400

        try:
            day = date.fromisoformat(fields["date"])
        except ValueError:
            return jsonify({"ok": False, "reason": "invalid", "message": "Ungültiges Datum."}), 400

        try:
            created = submit_booking(
                repository,
                resource_name=fields["resource_name"],
                title=fields["title"],
                day=day,
                start_text=fields["start_time"],
                end_text=fields["end_time"],
                owner=user,
                now=clock(),
            )
        except BookingRejected as error:
            body: dict[str, Any] = {
                "ok": False,
                "reason": error.reason,
                "message": REJECTION_MESSAGES.get(error.reason, str(error)),
            }
            if error.conflict is not None:
                body["conflict"] = _serialize_booking(error.conflict, user)
            return jsonify(body), 400
        except ValueError as error:
            return jsonify({"ok": False, "reason": "invalid", "message": str(error)}), 400
        except BookingStorageError:
            app.logger.exception("Failed to store booking")
            return jsonify({"ok": False, "message": "Fehler beim Erstellen der Buchung."}), 500

        return jsonify({"ok": True, "booking": _serialize_booking(created, user)}), 201

    @app.delete("/api/bookings/<reservation_id>")
    def cancel_booking(reservation_id: str) -> Any:
        user = _current_user()
        if user is None:
            return jsonify({"ok": False, "message": "Anmeldung erforderlich."}), 401

        try:
            cancelled = repository.cancel(reservation_id, user, is_admin=user in admins, now=clock())
        except BookingNotFound:
            return jsonify({"ok": False, "message": "Buchung nicht gefunden."}), 404
        except BookingPermissionError:
            return jsonify({"ok": False, "message": "Diese Buchung kann nicht storniert werden."}), 403
        except BookingStorageError:
            app.logger.exception("Failed to cancel booking %s", reservation_id)
            return jsonify({"ok": False, "message": "Fehler beim Löschen der Buchung."}), 500

        return jsonify({"ok": True, "booking": _serialize_booking(cancelled, user)})

    return app


def _text_field(payload: dict[str, Any], name: str) -> str:
    value = payload.get(name)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"{name} must be a string")
    return value


def _holiday_name(day: date, country: str) -> str | None:
    key = (country, day.year)
    if key not in _HOLIDAY_CACHE:
        _HOLIDAY_CACHE[key] = dict(pyholidays.country_holidays(country, years=[day.year]))
    return _HOLIDAY_CACHE[key].get(day)


if __name__ == "__main__":
    app = create_app(
        os.environ.get("OFFICE_BOOKINGS_DATA_DIR", "data"),
        admin_users=os.environ.get("OFFICE_BOOKINGS_ADMINS", "").split(","),
    )
    app.run(host="127.0.0.1", port=5000, debug=False)
