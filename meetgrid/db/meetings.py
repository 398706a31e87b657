import hashlib
import secrets
import string
from datetime import UTC, date, datetime
from typing import Any

from psycopg import errors as pg_errors
from psycopg.types.json import Json

from meetgrid.db.core import _get_connection
from meetgrid.errors import NameLockedError
from meetgrid.models.meetings import Event, Participant
from meetgrid.slots import TimeSlot, normalize_slots

_EVENT_COLUMNS = (
    "id, title, description, start_date, end_date, selected_dates, "
    "start_hour, end_hour, timezone, created_at"
)
_PARTICIPANT_COLUMNS = "id, event_id, name, email, availability, locked, created_at, updated_at"


def _generate_id(length: int = 10) -> str:
    chars = string.ascii_lowercase + string.digits
    return "".join(secrets.choice(chars) for _ in range(length))


def hash_password(password: str) -> str:
    return hashlib.sha256(password.encode()).hexdigest()


def _event_from_row(row: tuple) -> Event:
    return Event(
        id=row[0],
        title=row[1],
        description=row[2],
        start_date=row[3],
        end_date=row[4],
        selected_dates=row[5],
        start_hour=row[6],
        end_hour=row[7],
        timezone=row[8],
        created_at=row[9].astimezone(UTC),
    )


def _participant_from_row(row: tuple) -> Participant:
    return Participant(
        id=row[0],
        event_id=row[1],
        name=row[2],
        email=row[3],
        availability=normalize_slots(TimeSlot.from_dict(s) for s in row[4] or []),
        locked=row[5],
        created_at=row[6].astimezone(UTC),
        updated_at=row[7].astimezone(UTC) if row[7] else None,
    )


async def create_event(
    title: str,
    start_date: date,
    end_date: date,
    start_hour: int,
    end_hour: int,
    timezone: str,
    description: str | None = None,
    selected_dates: list[date] | None = None,
    id_length: int = 10,
) -> Event:
    now = datetime.now(UTC)
    dates_json = Json([d.isoformat() for d in selected_dates]) if selected_dates else None
    async with _get_connection() as conn:
        for _ in range(10):
            event_id = _generate_id(id_length)
            try:
                await conn.execute(
                    f"""INSERT INTO events ({_EVENT_COLUMNS})
                        VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)""",
                    (
                        event_id,
                        title,
                        description,
                        start_date,
                        end_date,
                        dates_json,
                        start_hour,
                        end_hour,
                        timezone,
                        now,
                    ),
                )
            except pg_errors.UniqueViolation:
                continue
            return Event(
                id=event_id,
                title=title,
                description=description,
                start_date=start_date,
                end_date=end_date,
                selected_dates=selected_dates or None,
                start_hour=start_hour,
                end_hour=end_hour,
                timezone=timezone,
                created_at=now,
            )
        raise RuntimeError("Failed to generate unique event ID")


async def fetch_event(event_id: str) -> Event | None:
    async with _get_connection() as conn:
        row = await (
            await conn.execute(f"SELECT {_EVENT_COLUMNS} FROM events WHERE id = %s", (event_id,))
        ).fetchone()
        if not row:
            return None
        return _event_from_row(row)


async def fetch_participants(event_id: str) -> list[Participant]:
    async with _get_connection() as conn:
        rows = await conn.execute(
            f"""SELECT {_PARTICIPANT_COLUMNS} FROM participants
                WHERE event_id = %s ORDER BY created_at ASC, id ASC""",
            (event_id,),
        )
        return [_participant_from_row(row) async for row in rows]


# One conditional write keyed on (event_id, name): a locked row only accepts
# the update when the supplied password hashes to its stored token. When the
# WHERE clause rejects the update nothing is returned.
_UPSERT_SQL = f"""
INSERT INTO participants (id, event_id, name, email, availability, locked, auth_token, created_at, updated_at)
VALUES (%(id)s, %(event_id)s, %(name)s, %(email)s, %(availability)s, %(locked)s, %(token)s, %(now)s, %(now)s)
ON CONFLICT (event_id, name) DO UPDATE SET
    availability = EXCLUDED.availability,
    email = COALESCE(EXCLUDED.email, participants.email),
    locked = participants.locked OR EXCLUDED.locked,
    auth_token = CASE WHEN participants.locked THEN participants.auth_token ELSE EXCLUDED.auth_token END,
    updated_at = EXCLUDED.updated_at
WHERE NOT participants.locked OR participants.auth_token = %(check)s
RETURNING {_PARTICIPANT_COLUMNS}, (xmax = 0) AS inserted
"""


async def upsert_participant(
    event_id: str,
    name: str,
    availability: list[TimeSlot],
    *,
    email: str | None = None,
    lock: bool = False,
    password: str | None = None,
) -> tuple[Participant, bool]:
    """Insert or replace a participant's availability by (event_id, name).

    Raises:
        NameLockedError: the name exists, is locked, and ``password`` does not match.
    """
    hashed = hash_password(password) if password else None
    lock = bool(lock and hashed)
    params: dict[str, Any] = {
        "id": _generate_id(13),
        "event_id": event_id,
        "name": name,
        "email": email,
        "availability": Json([s.to_dict() for s in normalize_slots(availability)]),
        "locked": lock,
        "token": hashed if lock else None,
        "now": datetime.now(UTC),
        "check": hashed,
    }
    async with _get_connection() as conn:
        row = await (await conn.execute(_UPSERT_SQL, params)).fetchone()
    if not row:
        raise NameLockedError(name=name, event_id=event_id)
    return _participant_from_row(row[:8]), bool(row[8])
