"""Conversion between SQLModel rows and the validated layout records.

Rows are turned into :class:`FieldRecord` / :class:`SignerRecord` here and
nowhere else, so numeric strings and blank ids are coerced exactly once.
"""
from datetime import datetime
from typing import List

from sqlmodel import Session, select

from .interaction import TEMP_ID_PREFIX
from .logger import get_logger
from .models import Document, Field, Signer
from .schemas import FieldRecord, PreparationState, SignerRecord

logger = get_logger(__name__)

_FIELD_COLUMNS = (
    "type", "label", "required", "placeholder", "x", "y", "width", "height", "page_number",
    "value", "signer_id", "color", "font_family", "font_size", "validation_rule",
    "conditional_logic", "options", "background_color", "border_color", "text_color",
)


def field_record(row: Field) -> FieldRecord:
    return FieldRecord.model_validate(row.model_dump())


def signer_record(row: Signer) -> SignerRecord:
    return SignerRecord.model_validate(row.model_dump())


def load_fields(session: Session, document_id: str) -> List[FieldRecord]:
    rows = session.exec(
        select(Field).where(Field.document_id == document_id).order_by(Field.position, Field.created_at)
    ).all()
    return [field_record(row) for row in rows]


def load_signers(session: Session, document_id: str) -> List[SignerRecord]:
    rows = session.exec(
        select(Signer).where(Signer.document_id == document_id).order_by(Signer.order)
    ).all()
    return [signer_record(row) for row in rows]


def load_state(session: Session, document: Document) -> PreparationState:
    return PreparationState(
        document_id=document.id,
        fields=tuple(load_fields(session, document.id)),
        signers=tuple(load_signers(session, document.id)),
        due_date=document.due_date,
        message=document.message or "",
        expiry_days=document.expiry_days,
        notify_signers=document.notify_signers,
        sequential_signing=document.sequential_signing,
    )


def is_temp_id(field_id: str) -> bool:
    return field_id.startswith(TEMP_ID_PREFIX)


def save_state(session: Session, document: Document, state: PreparationState) -> PreparationState:
    """Write the working set back and return it as re-read from the database.

    Fields and signers missing from ``state`` are deleted; fields still
    carrying a temporary id get a permanent one.
    """
    now = datetime.utcnow()

    existing_signers = {
        row.id: row for row in session.exec(select(Signer).where(Signer.document_id == document.id)).all()
    }
    kept_signers = set()
    for record in state.signers:
        row = existing_signers.get(record.id) or Signer(id=record.id, document_id=document.id, email=record.email)
        row.email = record.email
        row.name = record.name
        row.role = record.role
        row.order = record.order
        row.status = record.status.value
        row.color = record.color
        session.add(row)
        kept_signers.add(record.id)
    for signer_id, row in existing_signers.items():
        if signer_id not in kept_signers:
            session.delete(row)

    existing_fields = {
        row.id: row for row in session.exec(select(Field).where(Field.document_id == document.id)).all()
    }
    kept_fields = set()
    for position, record in enumerate(state.fields):
        row = None if is_temp_id(record.id) else existing_fields.get(record.id)
        if row is None:
            row = Field(document_id=document.id, type=record.type.value, width=record.width, height=record.height)
            if not is_temp_id(record.id):
                row.id = record.id
        for column in _FIELD_COLUMNS:
            setattr(row, column, getattr(record, column))
        row.type = record.type.value
        row.position = position
        row.updated_at = now
        session.add(row)
        kept_fields.add(row.id)
    for field_id, row in existing_fields.items():
        if field_id not in kept_fields:
            session.delete(row)

    document.due_date = state.due_date
    document.message = state.message
    document.expiry_days = state.expiry_days
    document.notify_signers = state.notify_signers
    document.sequential_signing = state.sequential_signing
    document.updated_at = now
    session.add(document)
    session.commit()
    session.refresh(document)
    logger.info(
        "preparation_saved",
        document_id=document.id,
        fields=len(state.fields),
        signers=len(state.signers),
    )
    return load_state(session, document)
