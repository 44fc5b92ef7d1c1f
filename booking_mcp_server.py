from __future__ import annotations

from datetime import date
from pathlib import Path
import os

from mcp.server.fastmcp import FastMCP

from office_bookings import BookingYamlRepository, submit_booking
from office_bookings.yaml_store import RESOURCES

mcp = FastMCP(
    "Office Bookings MCP Server",
    instructions="Expose office resource bookings from the office_bookings project.",
    json_response=True,
)

DATA_DIR = Path(os.environ.get("OFFICE_BOOKINGS_DATA_DIR", Path(__file__).parent / "data"))
REPOSITORY = BookingYamlRepository(DATA_DIR)


@mcp.resource("booking://resources")
async def list_resources() -> list[dict[str, str]]:
    """List bookable office resources."""
    return [{"resource_name": name, "label": label} for name, label in RESOURCES]


@mcp.tool()
def list_bookings(day: str, resource_name: str | None = None) -> list[dict[str, str]]:
    """Return bookings on an ISO date, optionally filtered by resource."""
    target = date.fromisoformat(day)
    if resource_name:
        records = REPOSITORY.list_reservations(resource_name, target)
    else:
        records = REPOSITORY.list_day(target)
    return [record.to_dict() for record in records]


@mcp.tool()
def add_booking(resource_name: str, title: str, day: str, start_time: str, end_time: str, owner: str) -> dict[str, str]:
    """Book a resource on an ISO date between two HH:MM times."""
    created = submit_booking(
        REPOSITORY,
        resource_name=resource_name,
        title=title,
        day=date.fromisoformat(day),
        start_text=start_time,
        end_text=end_time,
        owner=owner,
    )
    return created.to_dict()


@mcp.tool()
def cancel_booking(reservation_id: str, requested_by: str) -> dict[str, str]:
    """Cancel a booking owned by ``requested_by``."""
    return REPOSITORY.cancel(reservation_id, requested_by).to_dict()


def main() -> None:
    mcp.run()


if __name__ == "__main__":
    main()
