"""Pointer-driven drag and resize of field overlays.

One gesture at a time: pointer-down on an overlay starts a drag, on its
resize handle a resize. Moves only update a preview; the committed record is
produced once, on release, converted back to PDF points with the scale that
was captured at pointer-down. Out-of-range geometry is clamped, never
rejected.
"""
import math
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from .geometry import screen_delta_to_pdf
from .logger import get_logger
from .schemas import FieldRecord, FieldType

logger = get_logger(__name__)

DRAG_THRESHOLD_PX = 3.0
MAX_FIELD_SIZE = (500.0, 500.0)
DUPLICATE_OFFSET = 20.0
NUDGE_STEP = 1.0
NUDGE_STEP_LARGE = 10.0
TEMP_ID_PREFIX = "temp-"

MIN_FIELD_SIZES = {
    FieldType.SIGNATURE: (80.0, 30.0),
    FieldType.CHECKBOX: (16.0, 16.0),
}
DEFAULT_MIN_SIZE = (50.0, 20.0)

ARROW_KEYS = {
    "ArrowLeft": (-1.0, 0.0),
    "ArrowRight": (1.0, 0.0),
    "ArrowUp": (0.0, -1.0),
    "ArrowDown": (0.0, 1.0),
}

CAPTURE_TYPES = (FieldType.SIGNATURE, FieldType.INITIAL)


def temp_field_id() -> str:
    return f"{TEMP_ID_PREFIX}{uuid.uuid4()}"


def min_size(field_type: FieldType) -> Tuple[float, float]:
    return MIN_FIELD_SIZES.get(field_type, DEFAULT_MIN_SIZE)


def clamp_size(field_type: FieldType, width: float, height: float) -> Tuple[float, float]:
    min_w, min_h = min_size(field_type)
    max_w, max_h = MAX_FIELD_SIZE
    return min(max_w, max(min_w, width)), min(max_h, max(min_h, height))


def clamp_position(x: float, y: float) -> Tuple[float, float]:
    return max(0.0, x), max(0.0, y)


def resized(field: FieldRecord, width: float, height: float) -> FieldRecord:
    new_w, new_h = clamp_size(field.type, width, height)
    if (new_w, new_h) != (width, height):
        logger.debug(
            "field_size_clamped",
            field_id=field.id,
            field_type=field.type.value,
            requested=(width, height),
            applied=(new_w, new_h),
        )
    return field.model_copy(update={"width": new_w, "height": new_h})


def moved(field: FieldRecord, x: float, y: float) -> FieldRecord:
    new_x, new_y = clamp_position(x, y)
    if (new_x, new_y) != (x, y):
        logger.debug("field_position_clamped", field_id=field.id, requested=(x, y), applied=(new_x, new_y))
    return field.model_copy(update={"x": new_x, "y": new_y})


class GestureMode(str, Enum):
    IDLE = "idle"
    DRAGGING = "dragging"
    RESIZING = "resizing"


@dataclass
class _Gesture:
    field: FieldRecord
    mode: GestureMode
    start: Tuple[float, float]
    last: Tuple[float, float]
    scale: float
    activated: bool = False


@dataclass(frozen=True)
class GestureOutcome:
    """Result of releasing the pointer.

    ``kind`` is ``"commit"`` (``field`` holds the new record), ``"click"``
    (selection only, possibly asking for signature capture), ``"cancel"`` or
    ``"ignored"``.
    """
    kind: str
    field_id: Optional[str] = None
    field: Optional[FieldRecord] = None
    capture_requested: bool = False


class InteractionController:
    def __init__(self, drag_threshold: float = DRAG_THRESHOLD_PX):
        self.drag_threshold = drag_threshold
        self.selected_id: Optional[str] = None
        self._gesture: Optional[_Gesture] = None

    @property
    def mode(self) -> GestureMode:
        return self._gesture.mode if self._gesture else GestureMode.IDLE

    @property
    def active_field_id(self) -> Optional[str]:
        return self._gesture.field.id if self._gesture else None

    def pointer_down(self, field: FieldRecord, x: float, y: float, scale: Optional[float],
                     on_handle: bool = False) -> bool:
        """Start a gesture on ``field``. Returns False when the event is ignored."""
        if self._gesture is not None:
            logger.debug("pointer_down_ignored", field_id=field.id, active=self._gesture.field.id)
            return False
        if scale is None or scale <= 0:
            return False
        mode = GestureMode.RESIZING if on_handle else GestureMode.DRAGGING
        self._gesture = _Gesture(field=field, mode=mode, start=(x, y), last=(x, y), scale=scale)
        return True

    def pointer_move(self, x: float, y: float) -> Optional[FieldRecord]:
        gesture = self._gesture
        if gesture is None:
            return None
        gesture.last = (x, y)
        if not gesture.activated:
            dx, dy = x - gesture.start[0], y - gesture.start[1]
            gesture.activated = math.hypot(dx, dy) >= self.drag_threshold
        return self.preview()

    def preview(self) -> Optional[FieldRecord]:
        """Uncommitted geometry of the field under the pointer."""
        gesture = self._gesture
        if gesture is None:
            return None
        if not gesture.activated:
            return gesture.field
        return self._project(gesture, log=False)

    def pointer_up(self, x: Optional[float] = None, y: Optional[float] = None,
                   active_signer_id: Optional[str] = None) -> GestureOutcome:
        gesture = self._gesture
        if gesture is None:
            return GestureOutcome(kind="ignored")
        if x is not None and y is not None:
            self.pointer_move(x, y)
        self._gesture = None
        field = gesture.field
        self.selected_id = field.id
        if not gesture.activated:
            capture = (
                gesture.mode is GestureMode.DRAGGING
                and field.type in CAPTURE_TYPES
                and active_signer_id is not None
                and field.signer_id == active_signer_id
            )
            return GestureOutcome(kind="click", field_id=field.id, capture_requested=capture)
        committed = self._project(gesture, log=True)
        if committed is None:
            return GestureOutcome(kind="ignored", field_id=field.id)
        return GestureOutcome(kind="commit", field_id=field.id, field=committed)

    def cancel(self) -> Optional[FieldRecord]:
        """Abandon the gesture and return the field as it was before it started."""
        gesture, self._gesture = self._gesture, None
        return gesture.field if gesture else None

    def _project(self, gesture: _Gesture, log: bool) -> Optional[FieldRecord]:
        delta = screen_delta_to_pdf(
            gesture.last[0] - gesture.start[0],
            gesture.last[1] - gesture.start[1],
            gesture.scale,
        )
        if delta is None:
            return None
        dx, dy = delta
        field = gesture.field
        if gesture.mode is GestureMode.DRAGGING:
            if log:
                return moved(field, field.x + dx, field.y + dy)
            new_x, new_y = clamp_position(field.x + dx, field.y + dy)
            return field.model_copy(update={"x": new_x, "y": new_y})
        if log:
            return resized(field, field.width + dx, field.height + dy)
        new_w, new_h = clamp_size(field.type, field.width + dx, field.height + dy)
        return field.model_copy(update={"width": new_w, "height": new_h})

    # ---------- non-pointer commits ----------

    def select(self, field_id: Optional[str]) -> None:
        self.selected_id = field_id

    def forget(self, field_id: str) -> None:
        """Drop selection and any gesture on a field that no longer exists."""
        if self.selected_id == field_id:
            self.selected_id = None
        if self._gesture is not None and self._gesture.field.id == field_id:
            self._gesture = None

    def nudge(self, field: FieldRecord, key: str, large: bool = False) -> Optional[FieldRecord]:
        direction = ARROW_KEYS.get(key)
        if direction is None:
            return None
        step = NUDGE_STEP_LARGE if large else NUDGE_STEP
        return moved(field, field.x + direction[0] * step, field.y + direction[1] * step)

    def duplicate(self, field: FieldRecord) -> FieldRecord:
        copy = field.model_copy(update={
            "id": temp_field_id(),
            "x": field.x + DUPLICATE_OFFSET,
            "y": field.y + DUPLICATE_OFFSET,
            "value": None,
            "created_at": None,
            "updated_at": None,
        })
        self.selected_id = copy.id
        return copy
