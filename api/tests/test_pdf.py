from io import BytesIO

from pypdf import PdfReader, PdfWriter

from signlayout.geometry import PageSize
from signlayout.pdf import read_page_geometry, stamp_fields
from signlayout.schemas import FieldRecord, FieldType


def test_read_page_geometry(simple_pdf):
    assert read_page_geometry(simple_pdf) == {1: PageSize(300.0, 144.0)}


def test_rotated_pages_report_displayed_size():
    writer = PdfWriter()
    writer.add_blank_page(width=200, height=100)
    writer.pages[0].rotate(90)
    buf = BytesIO()
    writer.write(buf)
    assert read_page_geometry(buf.getvalue()) == {1: PageSize(100.0, 200.0)}


def test_stamp_fields_draws_values(simple_pdf, signature_data_url):
    fields = [
        FieldRecord(id="t", document_id="doc", type=FieldType.TEXT, x=20, y=20, width=150, height=30,
                    value="Jane Doe", font_family="Arial", font_size=12),
        FieldRecord(id="s", document_id="doc", type=FieldType.SIGNATURE, x=20, y=60, width=100, height=40,
                    value=signature_data_url),
        FieldRecord(id="c", document_id="doc", type=FieldType.CHECKBOX, x=200, y=20, width=16, height=16,
                    value="true"),
        FieldRecord(id="empty", document_id="doc", type=FieldType.TEXT, width=50, height=20),
        FieldRecord(id="far", document_id="doc", type=FieldType.TEXT, width=50, height=20, page_number=5,
                    value="lost"),
    ]
    stamped = stamp_fields(simple_pdf, fields)
    assert stamped.startswith(b"%PDF")
    reader = PdfReader(BytesIO(stamped))
    assert len(reader.pages) == 1
    assert "Jane Doe" in reader.pages[0].extract_text()


def test_stamp_without_values_keeps_pages(simple_pdf):
    stamped = stamp_fields(simple_pdf, [])
    assert len(PdfReader(BytesIO(stamped)).pages) == 1
