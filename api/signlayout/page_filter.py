"""Select the fields to overlay on the visible page and resolve their colors."""
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .geometry import PageSize
from .schemas import FieldRecord, SignerRecord

SIGNER_PALETTE = (
    "#3B82F6",  # blue
    "#10B981",  # green
    "#8B5CF6",  # purple
    "#F59E0B",  # amber
    "#EC4899",  # pink
    "#06B6D4",  # cyan
)
UNASSIGNED_COLOR = "#6366F1"


@dataclass(frozen=True)
class DisplayColors:
    border: str
    background: str
    text: str
    assigned: bool


def palette_color(index: int) -> str:
    return SIGNER_PALETTE[index % len(SIGNER_PALETTE)]


def hex_to_rgb(value: str) -> Optional[Tuple[int, int, int]]:
    value = value.lstrip("#")
    if len(value) == 3:
        value = "".join(ch * 2 for ch in value)
    if len(value) != 6:
        return None
    try:
        return int(value[0:2], 16), int(value[2:4], 16), int(value[4:6], 16)
    except ValueError:
        return None


def contrasting_text_color(background: str) -> str:
    """Black on light backgrounds, white on dark ones (YIQ brightness)."""
    rgb = hex_to_rgb(background)
    if rgb is None:
        return "#000000"
    r, g, b = rgb
    yiq = (r * 299 + g * 587 + b * 114) / 1000
    return "#000000" if yiq >= 128 else "#FFFFFF"


def signer_field_colors(color: str) -> dict:
    """Presentation properties a field inherits from its signer's color."""
    return {
        "color": color,
        "border_color": color,
        "background_color": f"{color}20",
        "text_color": contrasting_text_color(color),
    }


def resolve_colors(field: FieldRecord, signers: Mapping[str, SignerRecord]) -> DisplayColors:
    signer = signers.get(field.signer_id) if field.signer_id else None
    if signer is None:
        return DisplayColors(
            border=UNASSIGNED_COLOR,
            background=f"{UNASSIGNED_COLOR}1A",
            text="#000000",
            assigned=False,
        )
    color = field.color or signer.color
    return DisplayColors(
        border=field.border_color or color,
        background=field.background_color or f"{color}20",
        text=field.text_color or contrasting_text_color(color),
        assigned=True,
    )


def fields_for_page(
    fields: Iterable[FieldRecord],
    page,
    signer_id: Optional[str] = None,
    page_sizes: Optional[Mapping[int, PageSize]] = None,
) -> List[FieldRecord]:
    """Fields on ``page``, in list order, optionally limited to one signer.

    ``page`` is coerced to an int first so a numeric string from a query
    string compares equal to the stored page number; a non-integral page
    such as "2.5" matches nothing. When ``page_sizes`` is
    given and the page has no known size yet, nothing is returned.
    """
    try:
        number = float(page)
    except (TypeError, ValueError):
        return []
    if not number.is_integer():
        return []
    current = int(number)
    if page_sizes is not None and current not in page_sizes:
        return []
    return [
        f for f in fields
        if int(f.page_number) == current and (signer_id is None or f.signer_id == signer_id)
    ]


class PageFilter:
    """Memoizes :func:`fields_for_page` on its last inputs.

    Field lists are immutable tuples replaced on every commit, so identity of
    the tuple is enough to detect a change.
    """

    def __init__(self):
        self._key: Optional[tuple] = None
        self._fields: Optional[Sequence[FieldRecord]] = None
        self._result: List[FieldRecord] = []

    def __call__(
        self,
        fields: Sequence[FieldRecord],
        page,
        signer_id: Optional[str] = None,
        page_sizes: Optional[Dict[int, PageSize]] = None,
    ) -> List[FieldRecord]:
        known = None if page_sizes is None else tuple(sorted(page_sizes))
        key = (page, signer_id, known)
        if fields is self._fields and key == self._key:
            return list(self._result)
        self._result = fields_for_page(fields, page, signer_id, page_sizes)
        self._fields = fields
        self._key = key
        return list(self._result)
