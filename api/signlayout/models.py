
import uuid
from typing import Optional
from datetime import date, datetime
from sqlmodel import SQLModel, Field as ORMField


def _new_id() -> str:
    return uuid.uuid4().hex


class Document(SQLModel, table=True):
    id: str = ORMField(default_factory=_new_id, primary_key=True)
    filename: str
    s3_key: str
    sha256: Optional[str] = None
    page_count: int = 1
    status: str = "draft"  # draft|sent|completed|declined
    message: str = ""
    due_date: Optional[date] = None
    expiry_days: Optional[int] = None
    notify_signers: bool = True
    sequential_signing: bool = False
    s3_key_final: Optional[str] = None
    sha256_final: Optional[str] = None
    created_at: datetime = ORMField(default_factory=datetime.utcnow)
    updated_at: datetime = ORMField(default_factory=datetime.utcnow)


class Signer(SQLModel, table=True):
    id: str = ORMField(default_factory=_new_id, primary_key=True)
    document_id: str = ORMField(index=True)
    email: str
    name: Optional[str] = None
    role: Optional[str] = None
    order: int = 1
    status: str = "PENDING"  # PENDING|VIEWED|COMPLETED|DECLINED
    color: str = "#3B82F6"
    completed_at: Optional[datetime] = None


class Field(SQLModel, table=True):
    id: str = ORMField(default_factory=_new_id, primary_key=True)
    document_id: str = ORMField(index=True)
    type: str
    label: str = ""
    required: bool = False
    placeholder: Optional[str] = None
    x: float = 0.0
    y: float = 0.0
    width: float
    height: float
    page_number: int = 1
    position: int = 0  # list order within the document
    value: Optional[str] = None
    signer_id: Optional[str] = None
    color: Optional[str] = None
    font_family: Optional[str] = None
    font_size: Optional[float] = None
    validation_rule: Optional[str] = None
    conditional_logic: Optional[str] = None
    options: Optional[str] = None
    background_color: Optional[str] = None
    border_color: Optional[str] = None
    text_color: Optional[str] = None
    created_at: datetime = ORMField(default_factory=datetime.utcnow)
    updated_at: datetime = ORMField(default_factory=datetime.utcnow)
