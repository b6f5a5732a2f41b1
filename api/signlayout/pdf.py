# Page geometry and value stamping using pypdf + reportlab.

from io import BytesIO
from typing import Dict, Iterable, List

from pypdf import PdfReader, PdfWriter
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

from .geometry import PageSize
from .logger import get_logger
from .schemas import FieldRecord, FieldType
from .utils import data_url_to_bytes

logger = get_logger(__name__)

IMAGE_TYPES = (FieldType.SIGNATURE, FieldType.INITIAL, FieldType.IMAGE)
FONT_MAP = {
    "arial": "Helvetica",
    "helvetica": "Helvetica",
    "times new roman": "Times-Roman",
    "times": "Times-Roman",
    "courier": "Courier",
    "courier new": "Courier",
}
DEFAULT_FONT_SIZE = 10.0
PADDING = 2.0


def read_page_geometry(pdf_bytes: bytes) -> Dict[int, PageSize]:
    """Native size in points of every page, keyed by 1-based page number."""
    reader = PdfReader(BytesIO(pdf_bytes))
    sizes = {}
    for number, page in enumerate(reader.pages, start=1):
        width = float(page.mediabox.width)
        height = float(page.mediabox.height)
        if (page.rotation or 0) % 180 == 90:
            width, height = height, width
        sizes[number] = PageSize(width, height)
    return sizes


def _font(field: FieldRecord) -> str:
    return FONT_MAP.get((field.font_family or "").strip().lower(), "Helvetica")


def _draw_field(c: canvas.Canvas, field: FieldRecord, page_height: float):
    value = field.value or ""
    x, w, h = field.x, field.width, field.height
    # stored geometry is top-left origin; reportlab draws bottom-left
    y = page_height - field.y - h
    if field.type == FieldType.CHECKBOX:
        side = min(w, h)
        c.rect(x, y, side, side, stroke=1, fill=0)
        if value in ("true", "checked"):
            c.line(x, y, x + side, y + side)
            c.line(x, y + side, x + side, y)
    elif field.type in IMAGE_TYPES:
        if not value.startswith("data:image"):
            c.setFont(_font(field), field.font_size or DEFAULT_FONT_SIZE)
            c.drawString(x + PADDING, y + PADDING, value)
            return
        image = ImageReader(BytesIO(data_url_to_bytes(value)))
        c.drawImage(image, x, y, width=w, height=h, mask="auto", preserveAspectRatio=True, anchor="c")
    else:
        size = field.font_size or DEFAULT_FONT_SIZE
        c.setFont(_font(field), size)
        line_y = y + h - PADDING - size
        for line in value.splitlines() or [""]:
            if line_y < y:
                break
            c.drawString(x + PADDING, line_y, line)
            line_y -= size * 1.2


def _overlay_page(width: float, height: float, fields: List[FieldRecord]) -> bytes:
    buf = BytesIO()
    c = canvas.Canvas(buf, pagesize=(width, height))
    for field in fields:
        _draw_field(c, field, height)
    c.showPage()
    c.save()
    return buf.getvalue()


def stamp_fields(pdf_bytes: bytes, fields: Iterable[FieldRecord]) -> bytes:
    """Return a copy of the PDF with every filled field drawn onto its page."""
    reader = PdfReader(BytesIO(pdf_bytes))
    writer = PdfWriter()
    for page in reader.pages:
        writer.add_page(page)
    num_pages = len(reader.pages)

    by_page: Dict[int, List[FieldRecord]] = {}
    for field in fields:
        if not field.value:
            continue
        index = field.page_number - 1
        if index >= num_pages:
            logger.warning("stamp_field_out_of_range", field_id=field.id, page=field.page_number)
            continue
        by_page.setdefault(index, []).append(field)

    for index, page_fields in by_page.items():
        box = reader.pages[index].mediabox
        overlay = PdfReader(BytesIO(_overlay_page(float(box.width), float(box.height), page_fields)))
        writer.pages[index].merge_page(overlay.pages[0])

    out = BytesIO()
    writer.write(out)
    return out.getvalue()
