"""Postgres persistence for events and participants."""

from meetgrid.db.core import _get_connection, close_pool, init_pool, ping
from meetgrid.db.meetings import (
    create_event,
    fetch_event,
    fetch_participants,
    hash_password,
    upsert_participant,
)

__all__ = [
    "_get_connection",
    "close_pool",
    "create_event",
    "fetch_event",
    "fetch_participants",
    "hash_password",
    "init_pool",
    "ping",
    "upsert_participant",
]
