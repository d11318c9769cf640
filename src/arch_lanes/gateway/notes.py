"""Call-note notifications emitted after successful direct calls.

Observers are fire-and-forget. ``notify_call`` logs any observer failure and
returns normally, so a broken note sink never fails the call it describes.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol
from uuid import uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from arch_lanes import __version__
from arch_lanes.storage.common import build_sqlite_engine, dump_json, to_db_datetime, utc_now
from arch_lanes.storage.sqlmodel_models import CallNote

logger = logging.getLogger(__name__)

PROMPT_PREVIEW_CHARS = 200
WORKER_NAME = "arch-lanes"


@dataclass(slots=True)
class CallNoteRecord:
    """What one successful call looked like, without the full prompt."""

    model: str
    provider: str
    input_sha256: str
    prompt_preview: str
    notes: dict[str, Any] = field(default_factory=dict)


class CallObserver(Protocol):
    def record(self, note: CallNoteRecord) -> None: ...


class NullCallObserver:
    """Discards notes."""

    def record(self, note: CallNoteRecord) -> None:
        return None


class SqlCallObserver:
    """Persists notes into the ``call_notes`` table."""

    def __init__(self, db_path: Path) -> None:
        self.engine = build_sqlite_engine(db_path=db_path)

    def record(self, note: CallNoteRecord) -> None:
        with Session(self.engine) as session:
            session.add(
                CallNote(
                    note_id=str(uuid4()),
                    model=note.model,
                    provider=note.provider,
                    input_sha256=note.input_sha256,
                    prompt_preview=note.prompt_preview,
                    notes_json=dump_json(note.notes) if note.notes else None,
                    created_at=to_db_datetime(utc_now()),
                ),
            )
            session.commit()

    def close(self) -> None:
        self.engine.dispose()


def build_call_note(
    *,
    model: str,
    provider: str,
    input_text: str,
    chosen_by: str | None = None,
) -> CallNoteRecord:
    routing_policy: dict[str, Any] = {"strict_model_ids": True, "chosen_model": model}
    if chosen_by is not None:
        routing_policy["chosen_by"] = chosen_by
    return CallNoteRecord(
        model=model,
        provider=provider,
        input_sha256=hashlib.sha256(input_text.encode("utf-8")).hexdigest(),
        prompt_preview=input_text[:PROMPT_PREVIEW_CHARS],
        notes={
            "worker": {"name": WORKER_NAME, "version": __version__},
            "routing_policy": routing_policy,
        },
    )


def notify_call(observer: CallObserver, note: CallNoteRecord) -> bool:
    """Deliver a note; return False (after logging) when the observer fails."""

    try:
        observer.record(note)
    except (SQLAlchemyError, OSError, ValueError, RuntimeError) as exc:
        logger.warning("Call note for %s was not recorded: %s", note.model, exc)
        return False
    return True
