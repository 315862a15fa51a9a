"""Customer notes: an append-only journal, created or deleted but never edited."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from crm_service.domain.values import check_length, utcnow
from crm_service.errors import ValidationError

MAX_NOTE_LENGTH = 2000


class NoteType(Enum):
    GENERAL = "general"
    SERVICE = "service"
    COMPLAINT = "complaint"
    COMPLIMENT = "compliment"
    REMINDER = "reminder"
    WARNING = "warning"


NOTE_TYPES = {t.value for t in NoteType}

NOTE_TYPE_DISPLAY_NAMES = {
    NoteType.GENERAL.value: "General",
    NoteType.SERVICE.value: "Service",
    NoteType.COMPLAINT.value: "Complaint",
    NoteType.COMPLIMENT.value: "Compliment",
    NoteType.REMINDER.value: "Reminder",
    NoteType.WARNING.value: "Warning",
}


@dataclass
class CustomerNote:
    id: str
    customer_id: str
    staff_id: str
    staff_name: str
    note: str
    type: str = NoteType.GENERAL.value
    created_at: datetime = field(default_factory=utcnow)

    @property
    def type_display_name(self) -> str:
        return NOTE_TYPE_DISPLAY_NAMES.get(self.type, "Unknown")

    def short_note(self, max_length: int = 100) -> str:
        if len(self.note) <= max_length:
            return self.note
        return self.note[: max_length - 3] + "..."

    def summary(self) -> str:
        return f"[{self.type_display_name}] {self.staff_name} - {self.created_at:%d/%m/%Y %H:%M}"

    def validate(self) -> None:
        if not self.customer_id:
            raise ValidationError("customer_id", "customer id is required")
        if not self.staff_id:
            raise ValidationError("staff_id", "staff id is required")
        check_length("staff_id", self.staff_id, 36)
        if not self.staff_name:
            raise ValidationError("staff_name", "staff name is required")
        if len(self.staff_name) > 200:
            raise ValidationError("staff_name", "must be at most 200 characters")
        if not self.note:
            raise ValidationError("note", "note body is required")
        if len(self.note) > MAX_NOTE_LENGTH:
            raise ValidationError("note", f"note cannot exceed {MAX_NOTE_LENGTH} characters")
        if self.type not in NOTE_TYPES:
            raise ValidationError("type", "invalid note type")


@dataclass
class CustomerNoteCreate:
    customer_id: str
    staff_id: str
    staff_name: str
    note: str
    type: str = ""


@dataclass
class CustomerNoteFilter:
    customer_id: str = ""
    type: str = ""
    staff_id: str = ""
    date_from: datetime | None = None
    date_to: datetime | None = None
    page: int = 0
    limit: int = 0


def new_customer_note(create: CustomerNoteCreate) -> CustomerNote:
    """Build a note; an empty type falls back to general."""
    return CustomerNote(
        id=str(uuid.uuid4()),
        customer_id=create.customer_id,
        staff_id=create.staff_id,
        staff_name=create.staff_name,
        note=create.note,
        type=create.type or NoteType.GENERAL.value,
        created_at=utcnow(),
    )
