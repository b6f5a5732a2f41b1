import re
from datetime import date, datetime
from enum import Enum
from typing import Dict, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field as PField, field_validator
from pydantic.alias_generators import to_camel

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
HEX_COLOR_RE = re.compile(r"^#([A-Fa-f0-9]{6}|[A-Fa-f0-9]{3})$")


class FieldType(str, Enum):
    TEXT = "text"
    EMAIL = "email"
    DATE = "date"
    CHECKBOX = "checkbox"
    SIGNATURE = "signature"
    INITIAL = "initial"
    NAME = "name"
    PHONE = "phone"
    ADDRESS = "address"
    DROPDOWN = "dropdown"
    RADIO = "radio"
    NUMBER = "number"
    TEXTAREA = "textarea"
    IMAGE = "image"
    FORMULA = "formula"
    PAYMENT = "payment"


class SignerStatus(str, Enum):
    PENDING = "PENDING"
    VIEWED = "VIEWED"
    COMPLETED = "COMPLETED"
    DECLINED = "DECLINED"


def _coerce_number(value):
    # values crossing the JSON/form boundary may be numeric strings
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
        return float(value)
    return value


def _coerce_int(value):
    value = _coerce_number(value)
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FieldRecord(CamelModel):
    """Canonical field record, validated once at the persistence/API boundary."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str
    document_id: str
    type: FieldType
    label: str = ""
    required: bool = False
    placeholder: Optional[str] = None
    x: float = 0.0
    y: float = 0.0
    width: float = PField(gt=0)
    height: float = PField(gt=0)
    page_number: int = PField(default=1, ge=1)
    value: Optional[str] = None
    signer_id: Optional[str] = None
    color: Optional[str] = None
    font_family: Optional[str] = None
    font_size: Optional[float] = PField(default=None, gt=0)
    validation_rule: Optional[str] = None
    conditional_logic: Optional[str] = None
    options: Optional[str] = None
    background_color: Optional[str] = None
    border_color: Optional[str] = None
    text_color: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("x", "y", "width", "height", "font_size", mode="before")
    @classmethod
    def _numbers(cls, value):
        return _coerce_number(value)

    @field_validator("page_number", mode="before")
    @classmethod
    def _page(cls, value):
        return _coerce_int(value)

    @field_validator("x", "y")
    @classmethod
    def _non_negative(cls, value: float) -> float:
        return max(0.0, value)

    @field_validator("signer_id", mode="before")
    @classmethod
    def _blank_signer(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("value", mode="before")
    @classmethod
    def _stringify_value(cls, value):
        if isinstance(value, bool):
            return "true" if value else "false"
        return value

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class SignerRecord(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str
    document_id: str
    email: str
    name: Optional[str] = None
    role: Optional[str] = None
    order: int = 1
    status: SignerStatus = SignerStatus.PENDING
    color: str = "#3B82F6"

    @field_validator("email")
    @classmethod
    def _email(cls, value: str) -> str:
        value = value.strip()
        if not EMAIL_RE.match(value):
            raise ValueError("invalid email address")
        return value

    @field_validator("color")
    @classmethod
    def _color(cls, value: str) -> str:
        if not HEX_COLOR_RE.match(value):
            raise ValueError("color must be a hex color such as #3B82F6")
        return value

    @field_validator("order", mode="before")
    @classmethod
    def _order(cls, value):
        return _coerce_int(value)

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class PreparationState(CamelModel):
    """Working set edited by one editor session; snapshots of it form the history."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    document_id: str
    fields: Tuple[FieldRecord, ...] = ()
    signers: Tuple[SignerRecord, ...] = ()
    due_date: Optional[date] = None
    message: str = ""
    expiry_days: Optional[int] = PField(default=None, ge=1)
    notify_signers: bool = True
    sequential_signing: bool = False

    def find_field(self, field_id: str) -> Optional[FieldRecord]:
        return next((f for f in self.fields if f.id == field_id), None)

    def find_signer(self, signer_id: str) -> Optional[SignerRecord]:
        return next((s for s in self.signers if s.id == signer_id), None)

    def replace_field(self, record: FieldRecord) -> "PreparationState":
        fields = tuple(record if f.id == record.id else f for f in self.fields)
        return self.model_copy(update={"fields": fields})

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ---------- request payloads ----------

class PageSizeIn(CamelModel):
    width: float = PField(gt=0)
    height: float = PField(gt=0)


class PageReport(CamelModel):
    page_count: int = PField(ge=1)
    pages: Dict[int, PageSizeIn] = PField(default_factory=dict)


class ViewportUpdate(CamelModel):
    current_page: Optional[int] = PField(default=None, ge=1)
    container_width: Optional[float] = PField(default=None, gt=0)
    zoom: Optional[float] = PField(default=None, gt=0)
    active_signer_id: Optional[str] = None
    signer_scoped: Optional[bool] = None


class FieldPlace(CamelModel):
    type: FieldType
    page_number: int = PField(default=1, ge=1)
    x: Optional[float] = None
    y: Optional[float] = None
    signer_id: Optional[str] = None
    label: Optional[str] = None


class FieldPatch(CamelModel):
    type: Optional[FieldType] = None
    label: Optional[str] = None
    required: Optional[bool] = None
    placeholder: Optional[str] = None
    x: Optional[float] = None
    y: Optional[float] = None
    width: Optional[float] = None
    height: Optional[float] = None
    page_number: Optional[int] = None
    color: Optional[str] = None
    font_family: Optional[str] = None
    font_size: Optional[float] = None
    validation_rule: Optional[str] = None
    conditional_logic: Optional[str] = None
    options: Optional[str] = None
    background_color: Optional[str] = None
    border_color: Optional[str] = None
    text_color: Optional[str] = None


class AssignSigner(CamelModel):
    signer_id: Optional[str] = None


class ValueCapture(CamelModel):
    value: str


class PointerEventIn(CamelModel):
    kind: Literal["down", "move", "up", "cancel"]
    x: float = 0.0
    y: float = 0.0
    field_id: Optional[str] = None
    handle: bool = False


class KeyPress(CamelModel):
    key: str
    shift: bool = False
    ctrl: bool = False
    meta: bool = False


class SignerCreate(CamelModel):
    email: str
    name: Optional[str] = None
    role: Optional[str] = None
    order: Optional[int] = None
    color: Optional[str] = None


class SignerUpdate(CamelModel):
    email: Optional[str] = None
    name: Optional[str] = None
    role: Optional[str] = None
    order: Optional[int] = None
    color: Optional[str] = None


class PreparationUpdate(CamelModel):
    due_date: Optional[date] = None
    message: Optional[str] = None
    expiry_days: Optional[int] = PField(default=None, ge=1)
    notify_signers: Optional[bool] = None
    sequential_signing: Optional[bool] = None
