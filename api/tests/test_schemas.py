import pytest
from pydantic import ValidationError

from signlayout.schemas import FieldRecord, FieldType, PreparationState, SignerRecord


def test_field_record_coerces_boundary_values():
    record = FieldRecord.model_validate({
        "id": "f1",
        "documentId": "doc",
        "type": "text",
        "x": "12.5",
        "y": -4,
        "width": "150",
        "height": 30,
        "pageNumber": "3",
        "signerId": "  ",
        "value": True,
    })
    assert record.x == 12.5
    assert record.y == 0
    assert record.width == 150.0
    assert record.page_number == 3
    assert record.signer_id is None
    assert record.value == "true"


def test_field_record_wire_format_is_camel_case_without_nulls():
    record = FieldRecord(id="f1", document_id="doc", type=FieldType.DATE, width=160, height=50, font_size=12)
    wire = record.to_wire()
    assert wire["documentId"] == "doc"
    assert wire["pageNumber"] == 1
    assert wire["fontSize"] == 12
    assert "signerId" not in wire
    assert "value" not in wire


def test_field_record_is_immutable():
    record = FieldRecord(id="f1", document_id="doc", type=FieldType.TEXT, width=10, height=10)
    with pytest.raises(ValidationError):
        record.x = 5


def test_field_record_rejects_bad_geometry():
    with pytest.raises(ValidationError):
        FieldRecord(id="f1", document_id="doc", type=FieldType.TEXT, width=0, height=10)
    with pytest.raises(ValidationError):
        FieldRecord(id="f1", document_id="doc", type="sticker", width=10, height=10)


def test_signer_record_validation():
    signer = SignerRecord(id="s1", document_id="doc", email=" jane@example.com ", order="2")
    assert signer.email == "jane@example.com"
    assert signer.order == 2
    with pytest.raises(ValidationError):
        SignerRecord(id="s1", document_id="doc", email="jane")
    with pytest.raises(ValidationError):
        SignerRecord(id="s1", document_id="doc", email="jane@example.com", color="blue")


def test_replace_field_keeps_position():
    fields = tuple(
        FieldRecord(id=fid, document_id="doc", type=FieldType.TEXT, width=10, height=10) for fid in "abc"
    )
    state = PreparationState(document_id="doc", fields=fields)
    moved = state.find_field("b").model_copy(update={"x": 40})
    updated = state.replace_field(moved)
    assert [f.id for f in updated.fields] == ["a", "b", "c"]
    assert updated.find_field("b").x == 40
    assert state.find_field("b").x == 0
    assert updated.find_signer("nobody") is None
