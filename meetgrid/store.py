"""Event/participant store seen by the rest of the application.

``PostgresStore`` is the deployed system of record. ``MemoryStore`` keeps
the same semantics (name-keyed upsert, lock check, oldest-first ordering)
in process for local runs and tests.
"""

import asyncio
import logging
import secrets
import string
from datetime import UTC, date, datetime
from typing import Protocol

import psycopg

from meetgrid import db
from meetgrid.errors import NameLockedError, RemoteFailure
from meetgrid.models.meetings import Event, Participant
from meetgrid.slots import TimeSlot, normalize_slots

logger = logging.getLogger("meetgrid.store")


class EventStore(Protocol):
    async def create_event(
        self,
        title: str,
        start_date: date,
        end_date: date,
        start_hour: int,
        end_hour: int,
        timezone: str,
        description: str | None = None,
        selected_dates: list[date] | None = None,
    ) -> Event: ...

    async def fetch_event(self, event_id: str) -> Event | None: ...

    async def fetch_participants(self, event_id: str) -> list[Participant]: ...

    async def upsert_participant(
        self,
        event_id: str,
        name: str,
        availability: list[TimeSlot],
        *,
        email: str | None = None,
        lock: bool = False,
        password: str | None = None,
    ) -> tuple[Participant, bool]: ...


class PostgresStore:
    """Delegates to :mod:`meetgrid.db`, surfacing driver errors as ``RemoteFailure``."""

    def __init__(self, id_length: int = 10) -> None:
        self.id_length = id_length

    async def create_event(
        self,
        title: str,
        start_date: date,
        end_date: date,
        start_hour: int,
        end_hour: int,
        timezone: str,
        description: str | None = None,
        selected_dates: list[date] | None = None,
    ) -> Event:
        try:
            return await db.create_event(
                title=title,
                start_date=start_date,
                end_date=end_date,
                start_hour=start_hour,
                end_hour=end_hour,
                timezone=timezone,
                description=description,
                selected_dates=selected_dates,
                id_length=self.id_length,
            )
        except (psycopg.Error, RuntimeError) as e:
            logger.exception("store.create_event failed")
            raise RemoteFailure(detail="Could not create event") from e

    async def fetch_event(self, event_id: str) -> Event | None:
        try:
            return await db.fetch_event(event_id)
        except psycopg.Error as e:
            logger.exception("store.fetch_event failed event_id=%s", event_id)
            raise RemoteFailure(event_id=event_id) from e

    async def fetch_participants(self, event_id: str) -> list[Participant]:
        try:
            return await db.fetch_participants(event_id)
        except psycopg.Error as e:
            logger.exception("store.fetch_participants failed event_id=%s", event_id)
            raise RemoteFailure(event_id=event_id) from e

    async def upsert_participant(
        self,
        event_id: str,
        name: str,
        availability: list[TimeSlot],
        *,
        email: str | None = None,
        lock: bool = False,
        password: str | None = None,
    ) -> tuple[Participant, bool]:
        try:
            return await db.upsert_participant(
                event_id, name, availability, email=email, lock=lock, password=password
            )
        except psycopg.Error as e:
            logger.exception("store.upsert_participant failed event_id=%s name=%s", event_id, name)
            raise RemoteFailure(event_id=event_id) from e


class MemoryStore:
    def __init__(self) -> None:
        self.events: dict[str, Event] = {}
        self.participants: dict[str, list[Participant]] = {}
        self._tokens: dict[tuple[str, str], str | None] = {}
        self._lock = asyncio.Lock()

    @staticmethod
    def _new_id(length: int) -> str:
        chars = string.ascii_lowercase + string.digits
        return "".join(secrets.choice(chars) for _ in range(length))

    async def create_event(
        self,
        title: str,
        start_date: date,
        end_date: date,
        start_hour: int,
        end_hour: int,
        timezone: str,
        description: str | None = None,
        selected_dates: list[date] | None = None,
    ) -> Event:
        async with self._lock:
            event_id = self._new_id(10)
            while event_id in self.events:
                event_id = self._new_id(10)
            event = Event(
                id=event_id,
                title=title,
                description=description,
                start_date=start_date,
                end_date=end_date,
                selected_dates=selected_dates or None,
                start_hour=start_hour,
                end_hour=end_hour,
                timezone=timezone,
                created_at=datetime.now(UTC),
            )
            self.events[event_id] = event
            self.participants[event_id] = []
            return event

    async def fetch_event(self, event_id: str) -> Event | None:
        return self.events.get(event_id)

    async def fetch_participants(self, event_id: str) -> list[Participant]:
        return [p.model_copy(deep=True) for p in self.participants.get(event_id, [])]

    async def upsert_participant(
        self,
        event_id: str,
        name: str,
        availability: list[TimeSlot],
        *,
        email: str | None = None,
        lock: bool = False,
        password: str | None = None,
    ) -> tuple[Participant, bool]:
        hashed = db.hash_password(password) if password else None
        lock = bool(lock and hashed)
        now = datetime.now(UTC)
        slots = normalize_slots(availability)
        async with self._lock:
            if event_id not in self.events:
                # Postgres rejects the row on the foreign key.
                raise RemoteFailure(event_id=event_id)
            rows = self.participants.setdefault(event_id, [])
            for i, existing in enumerate(rows):
                if existing.name != name:
                    continue
                token = self._tokens.get((event_id, name))
                if existing.locked and (hashed is None or token != hashed):
                    raise NameLockedError(name=name, event_id=event_id)
                if not existing.locked:
                    self._tokens[(event_id, name)] = hashed if lock else None
                updated = existing.model_copy(
                    update={
                        "availability": slots,
                        "email": email if email is not None else existing.email,
                        "locked": existing.locked or lock,
                        "updated_at": now,
                    }
                )
                rows[i] = updated
                return updated.model_copy(deep=True), False
            created = Participant(
                id=self._new_id(13),
                event_id=event_id,
                name=name,
                email=email,
                availability=slots,
                locked=lock,
                created_at=now,
                updated_at=now,
            )
            rows.append(created)
            self._tokens[(event_id, name)] = hashed if lock else None
            return created.model_copy(deep=True), True
