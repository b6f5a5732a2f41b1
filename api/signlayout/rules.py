"""Conditional visibility and value validation for filled fields.

Both degrade silently: a malformed ``conditionalLogic`` leaves the field
visible, a malformed ``validationRule`` adds no errors.
"""
import json
import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence

from .logger import get_logger
from .schemas import FieldRecord, FieldType

logger = get_logger(__name__)

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_RE = re.compile(r"^[\d\s\-+()]{7,20}$")
CHECKBOX_VALUES = ("true", "false", "checked", "unchecked", "")
IMAGE_TYPES = (FieldType.SIGNATURE, FieldType.INITIAL, FieldType.IMAGE)
OPTION_TYPES = (FieldType.DROPDOWN, FieldType.RADIO)


@dataclass(frozen=True)
class FieldValidationError:
    field_id: str
    code: str
    message: str

    def to_wire(self) -> dict:
        return {"fieldId": self.field_id, "code": self.code, "message": self.message}


# ---------- conditional logic ----------

def parse_conditional_logic(raw: Optional[str]) -> Optional[Dict[str, Any]]:
    if not raw:
        return None
    try:
        logic = json.loads(raw)
    except (TypeError, ValueError):
        logger.debug("conditional_logic_unparseable", raw=raw)
        return None
    if not isinstance(logic, dict):
        return None
    if not logic.get("condition") or not logic.get("action") or not logic.get("targetFieldId"):
        return None
    return logic


def _as_number(value: str) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _compare(a: Optional[float], b: Optional[float], op) -> bool:
    if a is None or b is None:
        return False
    return op(a, b)


def evaluate_condition(condition: Any, values: Dict[str, Optional[str]]) -> bool:
    if not isinstance(condition, dict):
        return False
    if "operator" in condition:
        parts = condition.get("conditions") or []
        if condition["operator"] == "and":
            return all(evaluate_condition(c, values) for c in parts)
        if condition["operator"] == "or":
            return any(evaluate_condition(c, values) for c in parts)
        return False

    source_id = condition.get("fieldId")
    if not source_id:
        return True
    kind = condition.get("type")
    value = values.get(source_id)
    if kind == "isEmpty":
        return not value or not value.strip()
    if kind == "isNotChecked":
        return value not in ("true", "checked")
    if not value:
        return False
    expected = str(condition.get("value") or "")

    if kind == "equals":
        return value == expected
    if kind == "notEquals":
        return value != expected
    if kind == "contains":
        return expected in value
    if kind == "notContains":
        return expected not in value
    if kind == "greaterThan":
        return _compare(_as_number(value), _as_number(expected), lambda a, b: a > b)
    if kind == "lessThan":
        return _compare(_as_number(value), _as_number(expected), lambda a, b: a < b)
    if kind == "greaterThanOrEqual":
        return _compare(_as_number(value), _as_number(expected), lambda a, b: a >= b)
    if kind == "lessThanOrEqual":
        return _compare(_as_number(value), _as_number(expected), lambda a, b: a <= b)
    if kind == "isChecked":
        return value in ("true", "checked")
    if kind == "isNotEmpty":
        return bool(value.strip())
    if kind == "startsWith":
        return value.startswith(expected)
    if kind == "endsWith":
        return value.endswith(expected)
    if kind == "matchesRegex":
        try:
            return re.search(expected, value) is not None
        except re.error:
            return False
    return False


def is_field_visible(field: FieldRecord, all_fields: Iterable[FieldRecord]) -> bool:
    logic = parse_conditional_logic(field.conditional_logic)
    if logic is None or logic.get("isVisible") is True:
        return True
    if logic.get("isVisible") is False:
        return False
    values = {f.id: f.value for f in all_fields}
    return evaluate_condition(logic["condition"], values)


def visible_fields(fields: Sequence[FieldRecord], all_fields: Optional[Sequence[FieldRecord]] = None) -> List[FieldRecord]:
    pool = fields if all_fields is None else all_fields
    return [f for f in fields if is_field_visible(f, pool)]


# ---------- value validation ----------

def _parse_date(value: str) -> Optional[date]:
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).date()
    except ValueError:
        return None


def _parse_options(raw: Optional[str]) -> List[str]:
    if not raw:
        return []
    try:
        parsed = json.loads(raw)
    except ValueError:
        return [part.strip() for part in raw.split(",") if part.strip()]
    if isinstance(parsed, list):
        return [str(item) for item in parsed]
    return []


def _rule_params(rule: str) -> Dict[str, Any]:
    """Normalise a validation rule into a dict of constraints.

    Accepts ``regex:``, ``minLength:``, ``maxLength:``, ``range:min,max`` and
    ``length:min,max`` prefixes, or a JSON object. Unknown shapes yield {}.
    """
    rule = rule.strip()
    if rule.startswith("{"):
        try:
            parsed = json.loads(rule)
        except ValueError:
            logger.debug("validation_rule_unparseable", rule=rule)
            return {}
        return parsed if isinstance(parsed, dict) else {}
    prefix, _, rest = rule.partition(":")
    if not rest:
        return {}
    try:
        if prefix == "regex":
            re.compile(rest)
            return {"pattern": rest}
        if prefix == "minLength":
            return {"minLength": int(rest)}
        if prefix == "maxLength":
            return {"maxLength": int(rest)}
        if prefix == "length":
            low, high = rest.split(",", 1)
            return {"minLength": int(low), "maxLength": int(high)}
        if prefix == "range":
            low, high = rest.split(",", 1)
            return {"min": low.strip(), "max": high.strip()}
    except (ValueError, re.error):
        logger.debug("validation_rule_unparseable", rule=rule)
    return {}


def _date_bound(raw: Any) -> Optional[date]:
    if raw in (None, "", "none"):
        return None
    if raw == "today":
        return date.today()
    return _parse_date(str(raw))


def _check_rule(field: FieldRecord, value: str, params: Dict[str, Any]) -> List[FieldValidationError]:
    label = field.label or "Field"
    errors = []

    def add(code, message):
        errors.append(FieldValidationError(field.id, code, message))

    pattern = params.get("pattern")
    if pattern:
        try:
            if re.search(pattern, value) is None:
                add("pattern", f'"{label}" does not match the required format')
        except re.error:
            logger.debug("validation_pattern_invalid", field_id=field.id, pattern=pattern)
    try:
        min_length = params.get("minLength")
        if min_length is not None and len(value) < int(min_length):
            add("length", f'"{label}" must be at least {int(min_length)} characters')
        max_length = params.get("maxLength")
        if max_length is not None and len(value) > int(max_length):
            add("length", f'"{label}" must be at most {int(max_length)} characters')
    except (TypeError, ValueError):
        pass

    if "min" in params or "max" in params:
        if field.type == FieldType.DATE:
            parsed = _parse_date(value)
            low = _date_bound(params.get("min"))
            high = _date_bound(params.get("max"))
            if parsed and low and parsed < low:
                add("range", f'"{label}" must be on or after {low.isoformat()}')
            if parsed and high and parsed > high:
                add("range", f'"{label}" must be on or before {high.isoformat()}')
        else:
            number = _as_number(value)
            low, high = _as_number(params.get("min")), _as_number(params.get("max"))
            too_low = number is not None and low is not None and number < low
            too_high = number is not None and high is not None and number > high
            if too_low or too_high:
                if low is not None and high is not None:
                    add("range", f'"{label}" must be between {low:g} and {high:g}')
                elif too_low:
                    add("range", f'"{label}" must be at least {low:g}')
                else:
                    add("range", f'"{label}" must be at most {high:g}')
    return errors


def validate_field_value(field: FieldRecord) -> List[FieldValidationError]:
    """Errors for a filled (or required but empty) field."""
    label = field.label or "Field"
    value = field.value or ""
    empty = not value.strip()
    if field.type == FieldType.CHECKBOX and field.required and value not in ("true", "checked"):
        return [FieldValidationError(field.id, "required", f'"{label}" is required')]
    if empty:
        if field.required:
            return [FieldValidationError(field.id, "required", f'"{label}" is required')]
        return []

    errors: List[FieldValidationError] = []
    if field.type == FieldType.EMAIL and not EMAIL_RE.match(value):
        errors.append(FieldValidationError(field.id, "format", f'"{label}" must be a valid email address'))
    elif field.type == FieldType.PHONE and not PHONE_RE.match(value):
        errors.append(FieldValidationError(field.id, "format", f'"{label}" must be a valid phone number'))
    elif field.type in (FieldType.NUMBER, FieldType.PAYMENT) and _as_number(value) is None:
        errors.append(FieldValidationError(field.id, "format", f'"{label}" must be a valid number'))
    elif field.type == FieldType.DATE and _parse_date(value) is None:
        errors.append(FieldValidationError(field.id, "format", f'"{label}" must be a valid date'))
    elif field.type == FieldType.CHECKBOX and value not in CHECKBOX_VALUES:
        errors.append(FieldValidationError(field.id, "format", f'"{label}" must be checked or unchecked'))
    elif field.type in IMAGE_TYPES and not value.startswith("data:image"):
        errors.append(FieldValidationError(field.id, "format", f'"{label}" must be an image data URL'))
    elif field.type in OPTION_TYPES:
        options = _parse_options(field.options)
        if options and value not in options:
            errors.append(FieldValidationError(field.id, "option", f'"{label}" must be one of the listed options'))
    if errors:
        return errors

    if field.validation_rule and field.type not in IMAGE_TYPES:
        errors.extend(_check_rule(field, value, _rule_params(field.validation_rule)))
    return errors


def validate_fields(fields: Sequence[FieldRecord]) -> List[FieldValidationError]:
    """Validate the visible subset of ``fields``; hidden fields are skipped."""
    errors: List[FieldValidationError] = []
    for field in visible_fields(fields):
        errors.extend(validate_field_value(field))
    return errors
