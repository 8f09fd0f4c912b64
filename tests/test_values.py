"""Tests for letmesign.core.values -- signature value interpretation."""

import pytest

from letmesign.core.values import Point, SignatureValue, ValueKind, interpret_value, parse_ink

# ── parse_ink ─────────────────────────────────────────────────────


def test_parse_ink_single_stroke():
    strokes = parse_ink('[[{"x":0,"y":0},{"x":1,"y":1}]]')
    assert strokes == ((Point(0.0, 0.0), Point(1.0, 1.0)),)


def test_parse_ink_multiple_strokes():
    strokes = parse_ink('[[{"x":0.1,"y":0.2}],[{"x":0.3,"y":0.4},{"x":0.5,"y":0.6}]]')
    assert len(strokes) == 2
    assert strokes[1][1] == Point(0.5, 0.6)


@pytest.mark.parametrize(
    "payload",
    [
        '{"x": 1}',
        "[1, 2]",
        '[[{"x": 1}]]',
        '[[{"x": null, "y": 1}]]',
        "[[",
    ],
)
def test_parse_ink_rejects_bad_shapes(payload):
    with pytest.raises(ValueError):
        parse_ink(payload)


# ── interpret_value ───────────────────────────────────────────────


def test_signature_plain_text():
    value = interpret_value("Jane Roe", "signature")
    assert value == SignatureValue(ValueKind.TEXT, text="Jane Roe")


def test_signature_ink_array():
    value = interpret_value('[[{"x":0,"y":0},{"x":1,"y":1}]]', "signature")
    assert value.kind is ValueKind.INK
    assert value.strokes[0][1] == Point(1.0, 1.0)


@pytest.mark.parametrize("key", ["text", "initials", "signature"])
def test_signature_json_object_keys(key):
    value = interpret_value(f'{{"{key}": "JR"}}', "initials")
    assert value.kind is ValueKind.TEXT
    assert value.text == "JR"


def test_signature_json_object_with_ink_and_reason():
    value = interpret_value(
        '{"signature": [[{"x":0.5,"y":0.5}]], "reason": "Approve"}', "signature"
    )
    assert value.kind is ValueKind.INK
    assert value.reason == "Approve"


def test_signature_json_object_with_embedded_ink_string():
    value = interpret_value('{"text": "[[{\\"x\\":0,\\"y\\":1}]]"}', "signature")
    assert value.kind is ValueKind.INK
    assert value.strokes == ((Point(0.0, 1.0),),)


def test_signature_json_object_without_known_key():
    value = interpret_value('{"other": 1}', "signature")
    assert value.kind is ValueKind.TEXT
    assert value.text == "[SIGNATURE]"


def test_signature_broken_json_object_is_text():
    value = interpret_value("{not json", "signature")
    assert value.text == "{not json"


def test_signature_malformed_ink_raises():
    with pytest.raises(ValueError):
        interpret_value("[broken", "signature")


def test_empty_signature():
    assert interpret_value("", "signature").is_empty
    assert interpret_value(None, "initials").is_empty


@pytest.mark.parametrize(
    ("raw", "checked"), [("true", True), ("TRUE", True), ("false", False), ("", False)]
)
def test_checkbox(raw, checked):
    value = interpret_value(raw, "checkbox")
    assert value.kind is ValueKind.CHECKBOX
    assert value.checked is checked
    assert not value.is_empty


def test_multiple():
    value = interpret_value("a,b,c", "multiple")
    assert value.kind is ValueKind.MULTIPLE
    assert value.items == ("a", "b", "c")
    assert interpret_value("", "multiple").is_empty


@pytest.mark.parametrize(
    ("field_type", "kind"),
    [
        ("radio", ValueKind.RADIO),
        ("cells", ValueKind.CELLS),
        ("image", ValueKind.IMAGE),
        ("file", ValueKind.FILE),
        ("text", ValueKind.TEXT),
        ("date", ValueKind.TEXT),
        ("hologram", ValueKind.TEXT),
    ],
)
def test_kind_follows_field_type(field_type, kind):
    value = interpret_value("x", field_type)
    assert value.kind is kind
    assert value.text == "x"


def test_field_type_is_case_insensitive():
    assert interpret_value("true", "CheckBox").kind is ValueKind.CHECKBOX


def test_ink_is_empty_without_points():
    assert SignatureValue(ValueKind.INK, strokes=((),)).is_empty
