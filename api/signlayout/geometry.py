"""Coordinate transform between PDF-point space and screen pixels.

Field geometry is stored in PDF points with a top-left origin. The viewer
renders a page at an *effective scale*; every on-screen rectangle is the
stored rectangle multiplied by that scale, and every pointer delta is divided
by it on the way back. No rotation or skew is modelled.

Stored values are never rounded. Only :meth:`Rect.css` rounds, for display.
"""
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

MIN_ZOOM = 0.5
MAX_ZOOM = 3.0
MIN_SCALE = 0.5


@dataclass(frozen=True)
class PageSize:
    """Native page size in PDF points, as reported by the renderer."""
    width: float
    height: float


@dataclass(frozen=True)
class Rect:
    x: float
    y: float
    width: float
    height: float

    def css(self, digits: int = 2) -> dict:
        return {
            "left": round(self.x, digits),
            "top": round(self.y, digits),
            "width": round(self.width, digits),
            "height": round(self.height, digits),
        }


def clamp_zoom(zoom: float) -> float:
    return min(MAX_ZOOM, max(MIN_ZOOM, zoom))


@lru_cache(maxsize=256)
def effective_scale(
    page_width: Optional[float],
    container_width: Optional[float] = None,
    zoom: float = 1.0,
) -> Optional[float]:
    """Scale from PDF points to screen pixels for one page.

    The page is shrunk to fit the container (never enlarged), multiplied by
    the user zoom, and floored at ``MIN_SCALE`` so overlays stay clickable on
    narrow viewports. Returns ``None`` while the page width is unknown.
    """
    if not page_width or page_width <= 0:
        return None
    fit = 1.0
    if container_width and container_width > 0:
        fit = min(container_width / page_width, 1.0)
    return max(fit * clamp_zoom(zoom), MIN_SCALE)


def _usable(scale: Optional[float]) -> bool:
    return scale is not None and scale > 0


def pdf_to_screen(rect: Rect, scale: float) -> Rect:
    return Rect(rect.x * scale, rect.y * scale, rect.width * scale, rect.height * scale)


def screen_to_pdf(rect: Rect, scale: Optional[float]) -> Optional[Rect]:
    if not _usable(scale):
        return None
    return Rect(rect.x / scale, rect.y / scale, rect.width / scale, rect.height / scale)


def screen_delta_to_pdf(dx: float, dy: float, scale: Optional[float]) -> Optional[tuple]:
    """Convert a pointer delta to PDF points, or ``None`` when no scale is held."""
    if not _usable(scale):
        return None
    return dx / scale, dy / scale


def field_rect(field) -> Rect:
    return Rect(float(field.x), float(field.y), float(field.width), float(field.height))
