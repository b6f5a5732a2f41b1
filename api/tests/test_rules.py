import json

from signlayout.rules import (
    evaluate_condition,
    is_field_visible,
    parse_conditional_logic,
    validate_field_value,
    validate_fields,
)
from signlayout.schemas import FieldRecord, FieldType


def make_field(field_id="f1", field_type=FieldType.TEXT, **kwargs):
    data = {"id": field_id, "document_id": "doc", "type": field_type, "width": 150, "height": 30,
            "label": "Field"}
    data.update(kwargs)
    return FieldRecord(**data)


def show_when(condition):
    return json.dumps({"condition": condition, "action": "show", "targetFieldId": "target"})


def codes(errors):
    return [e.code for e in errors]


def test_malformed_logic_leaves_field_visible():
    assert parse_conditional_logic("{not json") is None
    assert parse_conditional_logic(json.dumps({"condition": {}})) is None
    field = make_field(conditional_logic="{not json")
    assert is_field_visible(field, [field])


def test_explicit_visibility_flag():
    logic = json.dumps({"condition": {"fieldId": "x"}, "action": "hide", "targetFieldId": "t", "isVisible": False})
    field = make_field(conditional_logic=logic)
    assert not is_field_visible(field, [field])


def test_visibility_follows_source_value():
    source = make_field("source", value="yes")
    target = make_field("target", conditional_logic=show_when(
        {"fieldId": "source", "type": "equals", "value": "yes"}
    ))
    assert is_field_visible(target, [source, target])
    source = source.model_copy(update={"value": "no"})
    assert not is_field_visible(target, [source, target])


def test_compound_conditions():
    values = {"a": "true", "b": "15", "c": ""}
    both = {"operator": "and", "conditions": [
        {"fieldId": "a", "type": "isChecked"},
        {"fieldId": "b", "type": "greaterThan", "value": "10"},
    ]}
    either = {"operator": "or", "conditions": [
        {"fieldId": "c", "type": "isNotEmpty"},
        {"fieldId": "b", "type": "lessThanOrEqual", "value": "15"},
    ]}
    assert evaluate_condition(both, values)
    assert evaluate_condition(either, values)
    assert evaluate_condition({"fieldId": "c", "type": "isEmpty"}, values)
    assert not evaluate_condition({"fieldId": "b", "type": "matchesRegex", "value": "["}, values)


def test_required_and_type_formats():
    assert codes(validate_field_value(make_field(required=True))) == ["required"]
    assert validate_field_value(make_field()) == []
    assert codes(validate_field_value(make_field(field_type=FieldType.EMAIL, value="nope"))) == ["format"]
    assert codes(validate_field_value(make_field(field_type=FieldType.NUMBER, value="abc"))) == ["format"]
    assert codes(validate_field_value(make_field(field_type=FieldType.DATE, value="2024-13-01"))) == ["format"]
    assert validate_field_value(make_field(field_type=FieldType.DATE, value="2024-02-29")) == []
    assert codes(validate_field_value(make_field(field_type=FieldType.SIGNATURE, value="scribble"))) == ["format"]
    assert codes(validate_field_value(make_field(field_type=FieldType.PHONE, value="12"))) == ["format"]


def test_required_checkbox_must_be_checked():
    assert codes(validate_field_value(make_field(field_type=FieldType.CHECKBOX, required=True, value=False))) == [
        "required"
    ]
    assert validate_field_value(make_field(field_type=FieldType.CHECKBOX, required=True, value=True)) == []


def test_option_membership():
    dropdown = make_field(field_type=FieldType.DROPDOWN, options="Red, Green", value="Blue")
    assert codes(validate_field_value(dropdown)) == ["option"]
    radio = make_field(field_type=FieldType.RADIO, options=json.dumps(["Yes", "No"]), value="No")
    assert validate_field_value(radio) == []


def test_prefixed_rules():
    assert codes(validate_field_value(make_field(validation_rule=r"regex:^\d{5}$", value="1234"))) == ["pattern"]
    assert validate_field_value(make_field(validation_rule=r"regex:^\d{5}$", value="12345")) == []
    assert codes(validate_field_value(make_field(validation_rule="minLength:3", value="ab"))) == ["length"]
    assert codes(validate_field_value(make_field(validation_rule="length:2,4", value="abcde"))) == ["length"]
    errors = validate_field_value(make_field(field_type=FieldType.NUMBER, validation_rule="range:1,10", value="11"))
    assert codes(errors) == ["range"]
    assert "between 1 and 10" in errors[0].message


def test_json_rule_and_date_range():
    assert codes(validate_field_value(make_field(validation_rule='{"maxLength": 2}', value="abc"))) == ["length"]
    late = make_field(field_type=FieldType.DATE, validation_rule='{"max": "2020-01-01"}', value="2021-06-01")
    assert codes(validate_field_value(late)) == ["range"]


def test_malformed_rule_adds_nothing():
    assert validate_field_value(make_field(validation_rule="regex:[", value="x")) == []
    assert validate_field_value(make_field(validation_rule="{oops", value="x")) == []
    assert validate_field_value(make_field(validation_rule="minLength:many", value="x")) == []


def test_hidden_fields_are_not_validated():
    source = make_field("source", value="no")
    hidden = make_field("target", required=True, conditional_logic=show_when(
        {"fieldId": "source", "type": "equals", "value": "yes"}
    ))
    assert validate_fields([source, hidden]) == []
    source = source.model_copy(update={"value": "yes"})
    assert codes(validate_fields([source, hidden])) == ["required"]
