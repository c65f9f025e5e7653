"""Wire formats shared with the clinic app.

Dates travel as DD-MM-YYYY, times as HH:MM or HH:MM:SS.
"""

from datetime import date, datetime, time

WIRE_DATE_FORMAT = "%d-%m-%Y"
WIRE_TIME_FORMAT = "%H:%M:%S"


def parse_wire_date(value: str | date) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    normalized = value.strip()
    try:
        return datetime.strptime(normalized, WIRE_DATE_FORMAT).date()
    except ValueError:
        pass

    # ISO dates are accepted as well; internal callers and tests use them.
    try:
        return date.fromisoformat(normalized)
    except ValueError as exc:
        raise ValueError(f"Invalid date '{value}', expected DD-MM-YYYY.") from exc


def format_wire_date(value: date) -> str:
    return value.strftime(WIRE_DATE_FORMAT)


def parse_wire_time(value: str | time) -> time:
    if isinstance(value, time):
        return value.replace(microsecond=0, tzinfo=None)

    normalized = value.strip()
    for time_format in ("%H:%M", "%H:%M:%S"):
        try:
            return datetime.strptime(normalized, time_format).time()
        except ValueError:
            continue

    raise ValueError(f"Invalid time '{value}', expected HH:MM or HH:MM:SS.")


def format_wire_time(value: time) -> str:
    return value.strftime(WIRE_TIME_FORMAT)
