"""Tests for letmesign.core.render -- field coordinates, captions and page overlays."""

from __future__ import annotations

import io
import re
from datetime import datetime, timezone

import pikepdf
import pytest

from letmesign.core.render import (
    CoordinateMode,
    FieldDescriptor,
    PdfBox,
    RenderItem,
    RenderSettings,
    SignerContext,
    build_caption_lines,
    caption_height,
    detect_mode,
    filter_fields_for_submitter,
    format_signed_at,
    hash_id,
    render_signatures,
    resolve_utc_offset,
    signature_id,
    to_absolute,
    to_pdf_box,
)
from letmesign.core.render.caption import caption_ops
from letmesign.core.render.fields import (
    checkbox_ops,
    field_ops,
    file_display_name,
    ink_ops,
    signature_area,
)
from letmesign.core.render.stream import HELVETICA, TIMES_ITALIC, clamp, text_width
from letmesign.core.values import Point, SignatureValue, ValueKind, interpret_value
from letmesign.errors import PdfStructureError, UnsupportedFieldType

SIGNED_AT = datetime(2024, 6, 1, 10, 0, 0, tzinfo=timezone.utc)
UUID_SHAPE = re.compile(r"^[0-9A-F]{8}-[0-9A-F]{4}-[0-9A-F]{4}-[0-9A-F]{4}-[0-9A-F]{12}$")


def _streams(page: pikepdf.Page) -> list[pikepdf.Object]:
    contents = page.obj.get("/Contents")
    if contents is None:
        return []
    if isinstance(contents, pikepdf.Array):
        return list(contents)
    return [contents]


def _render(pdf_bytes: bytes, items, settings=None) -> pikepdf.Pdf:
    return pikepdf.open(io.BytesIO(render_signatures(pdf_bytes, items, settings)))


def _new_stream_text(pdf_bytes: bytes, rendered: pikepdf.Pdf, page_index: int = 0) -> list[str]:
    with pikepdf.open(io.BytesIO(pdf_bytes)) as original:
        before = len(_streams(original.pages[page_index]))
    added = _streams(rendered.pages[page_index])[before:]
    return [s.read_bytes().decode("latin-1") for s in added]


def _item(value, *, field_type="signature", context=None, **geometry) -> RenderItem:
    box = {"page": 1, "x": 0.1, "y": 0.1, "width": 0.3, "height": 0.05}
    box.update(geometry)
    return RenderItem(
        FieldDescriptor(field_type=field_type, name="f1", **box),
        value,
        context or SignerContext(submitter_id=42, email="jane@example.com", signed_at=SIGNED_AT),
    )


# ── Coordinate modes ──────────────────────────────────────────────


@pytest.mark.parametrize(
    ("box", "mode"),
    [
        ((0.1, 0.1, 0.3, 0.05), CoordinateMode.RELATIVE),
        ((1.0, 1.0, 1.0, 1.0), CoordinateMode.RELATIVE),
        ((60, 80, 180, 40), CoordinateMode.VIEWER),
        ((600, 800, 600, 800), CoordinateMode.VIEWER),
        ((601, 80, 10, 10), CoordinateMode.ABSOLUTE),
        ((100, 801, 10, 10), CoordinateMode.ABSOLUTE),
    ],
)
def test_detect_mode(box, mode):
    assert detect_mode(*box) is mode


def test_scenario_a_box():
    """Relative (0.1, 0.1, 0.3, 0.05) on US Letter."""
    box = to_pdf_box(0.1, 0.1, 0.3, 0.05, 612, 792)
    assert box.x == pytest.approx(61.2)
    assert box.width == pytest.approx(183.6)
    assert box.height == pytest.approx(39.6)
    assert box.y == pytest.approx(792 - 79.2 - 39.6)


def test_viewer_mode_scales_to_page():
    assert to_absolute(300, 400, 60, 80, 612, 792) == pytest.approx((306, 396, 61.2, 79.2))


def test_absolute_mode_passthrough():
    assert to_absolute(50, 60, 70, 80, 612, 792, CoordinateMode.ABSOLUTE) == (50, 60, 70, 80)


def test_coordinate_modes_denote_same_region():
    """Relative, viewer-pixel and absolute forms of one region agree within a point."""
    relative = to_pdf_box(0.1, 0.1, 0.3, 0.05, 612, 792)
    viewer = to_pdf_box(60, 80, 180, 40, 612, 792)
    absolute = to_pdf_box(61.2, 79.2, 183.6, 39.6, 612, 792, CoordinateMode.ABSOLUTE)
    for other in (viewer, absolute):
        for a, b in zip(relative, other):
            assert abs(a - b) <= 1.0


def test_coordinate_modes_render_identically(valid_pdf_bytes):
    def draw(**geometry):
        item = _item("Jane", field_type="text", **geometry)
        rendered = _render(valid_pdf_bytes, [item])
        return _new_stream_text(valid_pdf_bytes, rendered)

    relative = draw()
    viewer = draw(x=60, y=80, width=180, height=40)
    absolute = draw(
        x=61.2, y=79.2, width=183.6, height=39.6, coordinate_mode=CoordinateMode.ABSOLUTE
    )
    assert relative == viewer == absolute


# ── Captions ──────────────────────────────────────────────────────


@pytest.mark.parametrize(("lines", "height"), [(0, 0), (1, 22), (2, 36), (3, 50), (4, 64)])
def test_caption_height(lines, height):
    assert caption_height(lines) == height


@pytest.mark.parametrize(
    ("settings", "context", "expected"),
    [
        (RenderSettings(), SignerContext(1, "a@b.c", reason="r"), 0),
        (RenderSettings(require_signing_reason=True), SignerContext(1, "a@b.c", reason="r"), 1),
        (RenderSettings(require_signing_reason=True), SignerContext(1, "a@b.c", reason=""), 0),
        (RenderSettings(add_signature_id=True), SignerContext(1, "a@b.c"), 3),
        (RenderSettings(add_signature_id=True), SignerContext(1, ""), 2),
        (
            RenderSettings(add_signature_id=True, require_signing_reason=True),
            SignerContext(1, "a@b.c", reason="r"),
            4,
        ),
    ],
)
def test_caption_line_count(settings, context, expected):
    lines = build_caption_lines(settings, context)
    assert len(lines) == expected
    expected_height = 0 if expected == 0 else (expected - 1) * 14 + 22
    assert caption_height(len(lines)) == expected_height


def test_scenario_b_caption():
    settings = RenderSettings(
        add_signature_id=True,
        require_signing_reason=True,
        timezone="Asia/Ho_Chi_Minh",
        locale="vi-VN",
    )
    context = SignerContext(
        submitter_id=42, email="jane@example.com", signed_at=SIGNED_AT, reason="Approve"
    )
    lines = build_caption_lines(settings, context)
    assert lines == [
        "Reason: Approve",
        "ID: F7600000-F760-0000-F760-0000F7600000",
        "jane@example.com",
        "01/06/2024, 17:00:00",
    ]
    assert caption_height(len(lines)) == 64


def test_reason_override():
    settings = RenderSettings(require_signing_reason=True)
    lines = build_caption_lines(settings, SignerContext(1, reason="ctx"), reason="value")
    assert lines == ["Reason: value"]


def test_caption_ops_draw_first_line_lowest():
    ops = caption_ops(["first", "second"], 100, 200)
    assert ops[0] == "BT"
    assert ops[-1] == "ET"
    assert "1 0 0 1 105.00 203.00 Tm" in ops
    assert "1 0 0 1 105.00 217.00 Tm" in ops
    assert ops.index("(first) Tj") < ops.index("(second) Tj")
    assert not any(op.endswith(" Td") for op in ops)


def test_caption_ops_empty():
    assert caption_ops([], 0, 0) == []


# ── Signature IDs ─────────────────────────────────────────────────


def test_hash_id_known_value():
    # djb2("43") = 0x67F, nibbles emitted low first
    assert hash_id(43) == "F7600000-F760-0000-F760-0000F7600000"
    assert signature_id(42) == hash_id(43)


@pytest.mark.parametrize("value", [0, 1, 42, 999, 123456789, 2**40])
def test_signature_id_shape_and_determinism(value):
    sid = signature_id(value)
    assert len(sid) == 36
    assert UUID_SHAPE.match(sid)
    assert signature_id(value) == sid


# ── Timezones and dates ───────────────────────────────────────────


@pytest.mark.parametrize(
    ("name", "offset"),
    [
        ("Asia/Ho_Chi_Minh", 7),
        ("Tokyo", 9),
        ("Asia/Tokyo", 9),
        ("Eastern", -5),
        ("UTC", 0),
        ("Mars/Olympus_Mons", 7),
        (None, 7),
    ],
)
def test_resolve_utc_offset(name, offset):
    assert resolve_utc_offset(name) == offset


def test_format_signed_at_vi():
    assert format_signed_at(SIGNED_AT, "Asia/Ho_Chi_Minh", "vi-VN") == "01/06/2024, 17:00:00"


def test_format_signed_at_en():
    assert format_signed_at(SIGNED_AT, "Tokyo", "en-US") == "06/01/2024, 19:00:00"


def test_format_signed_at_naive_is_utc():
    naive = datetime(2024, 6, 1, 10, 0, 0)
    assert format_signed_at(naive, "UTC", "en") == "06/01/2024, 10:00:00"


def test_format_signed_at_crosses_midnight():
    late = datetime(2024, 12, 31, 20, 30, 0, tzinfo=timezone.utc)
    assert format_signed_at(late, "Asia/Ho_Chi_Minh", "vi") == "01/01/2025, 03:30:00"


# ── Field visuals ─────────────────────────────────────────────────


def test_scenario_c_checkbox():
    box = PdfBox(50, 722, 20, 20)
    checked = checkbox_ops(True, box)
    unchecked = checkbox_ops(False, box)
    assert "50.00 722.00 20.00 20.00 re" in checked
    assert "50.00 722.00 20.00 20.00 re" in unchecked
    assert len([op for op in checked if op == "S"]) == 2
    assert len([op for op in unchecked if op == "S"]) == 1


def test_checkbox_centred_in_wide_box():
    ops = checkbox_ops(False, PdfBox(0, 0, 100, 20))
    assert "40.00 0.00 20.00 20.00 re" in ops


def test_scenario_d_ink_in_sub_area():
    box = to_pdf_box(100, 100, 200, 60, 612, 792, CoordinateMode.ABSOLUTE)
    value = interpret_value('[[{"x":0,"y":0},{"x":1,"y":1}]]', "signature")
    ops = field_ops("signature", value, box, caption=["Reason: Approve"])
    assert "100.00 692.00 m" in ops
    assert "300.00 659.00 l" in ops
    assert "2.5 w" in ops
    assert "1 J 1 j" in ops


def test_signature_area_without_caption():
    box = PdfBox(0, 0, 100, 50)
    assert signature_area(box, 0) == box
    assert signature_area(box, 22) == PdfBox(0, 27, 100, 23)


def test_ink_single_point_is_a_dot():
    ops = ink_ops(((Point(0.5, 0.5),),), PdfBox(0, 0, 100, 100))
    assert ops[-3:] == ["50.00 50.00 m", "50.00 50.00 l", "S"]


def test_ink_raw_canvas_coordinates_fit_box():
    strokes = ((Point(10, 10), Point(410, 110)),)
    ops = ink_ops(strokes, PdfBox(0, 0, 204, 104))
    coords = [tuple(float(v) for v in op.split()[:2]) for op in ops if op.endswith((" m", " l"))]
    for x, y in coords:
        assert 0 <= x <= 204
        assert 0 <= y <= 104
    # Uniform scale 0.5 with padding 2: horizontally centred, top-aligned
    assert coords == [(2.0, 102.0), (202.0, 52.0)]


def test_ink_empty():
    assert ink_ops((), PdfBox(0, 0, 10, 10)) == []


def test_text_font_size_clamped():
    ops = field_ops("text", SignatureValue(ValueKind.TEXT, text="x"), PdfBox(0, 0, 100, 100))
    assert "/LmsHelv 16.00 Tf" in ops
    ops = field_ops("text", SignatureValue(ValueKind.TEXT, text="x"), PdfBox(0, 0, 100, 5))
    assert "/LmsHelv 8.00 Tf" in ops


def test_typed_signature_uses_serif_italic():
    value = SignatureValue(ValueKind.TEXT, text="Jane Roe")
    ops = field_ops("signature", value, PdfBox(61.2, 673.2, 183.6, 39.6))
    assert "/LmsTimes 18.00 Tf" in ops
    assert "(Jane Roe) Tj" in ops


def test_cells_one_char_per_cell():
    ops = field_ops("cells", SignatureValue(ValueKind.CELLS, text="AB"), PdfBox(0, 0, 40, 20))
    assert "(A) Tj" in ops
    assert "(B) Tj" in ops
    assert "0.5 w" in ops
    assert "0.7 0.7 0.7 RG" in ops
    assert "20.00 0.00 m" in ops


def test_multiple_joined():
    ops = field_ops("multiple", interpret_value("a,b,c", "multiple"), PdfBox(0, 0, 100, 20))
    assert "(a b c) Tj" in ops


def test_radio_placeholder():
    ops = field_ops("radio", interpret_value("", "radio"), PdfBox(0, 0, 100, 20), field_name="Size")
    assert "(Choose Size) Tj" in ops


def test_image_and_file_placeholders():
    img = field_ops("image", interpret_value("https://x.test/a.png", "image"), PdfBox(0, 0, 9, 9))
    assert "([IMAGE: https://x.test/a.png]) Tj" in img
    url = "https://cdn.example.com/files/report.pdf?sig=abc"
    doc = field_ops("file", interpret_value(url, "file"), PdfBox(0, 0, 9, 9))
    assert "([DOWNLOAD: report.pdf]) Tj" in doc


def test_file_display_name():
    assert file_display_name("https://h/a/b/c.txt#frag") == "c.txt"
    assert file_display_name("plain-name.pdf") == "plain-name.pdf"


def test_typed_signature_disabled():
    value = SignatureValue(ValueKind.TEXT, text="Jane")
    ops = field_ops("signature", value, PdfBox(0, 0, 100, 50), allow_typed_text=False)
    assert "([ERROR: typed signatures are disabled]) Tj" in ops
    # Initials are not affected
    ops = field_ops("initials", value, PdfBox(0, 0, 100, 50), allow_typed_text=False)
    assert "(Jane) Tj" in ops


def test_unknown_type_raises():
    with pytest.raises(UnsupportedFieldType):
        field_ops("hologram", SignatureValue(ValueKind.TEXT, text="x"), PdfBox(0, 0, 1, 1))


def test_pdf_string_escaping_in_text():
    ops = field_ops("text", SignatureValue(ValueKind.TEXT, text="a(b)\\"), PdfBox(0, 0, 100, 20))
    assert "(a\\(b\\)\\\\) Tj" in ops


def test_helpers():
    assert clamp(5, 8, 16) == 8
    assert clamp(20, 8, 16) == 16
    assert text_width("", 10) == 0


@pytest.mark.parametrize(
    ("text", "font", "expected"),
    [
        # Helvetica: H=722 e=556 l=222 o=556
        ("Hello", HELVETICA, 22.78),
        ("0", HELVETICA, 5.56),
        # Times-Italic: J=444 a=500 n=500 e=444
        ("Jane", TIMES_ITALIC, 18.88),
        ("\u00e9", TIMES_ITALIC, 5.0),
    ],
)
def test_text_width_uses_font_metrics(text, font, expected):
    assert text_width(text, 10, font) == pytest.approx(expected)


def test_typed_signature_is_centred():
    box = PdfBox(100, 0, 200, 40)
    ops = field_ops("signature", SignatureValue(ValueKind.TEXT, text="Jane"), box)
    font_op = next(op for op in ops if op.endswith(" Tf"))
    size = float(font_op.split()[1])
    x = float(next(op for op in ops if op.endswith(" Tm")).split()[4])
    assert x + text_width("Jane", size, TIMES_ITALIC) / 2 == pytest.approx(200, abs=0.01)


# ── render_signatures ─────────────────────────────────────────────


def test_scenario_a_render(valid_pdf_bytes):
    """Single typed signature, no metadata: one new stream, AcroForm untouched."""
    settings = RenderSettings(add_signature_id=False, require_signing_reason=False)
    rendered = _render(valid_pdf_bytes, [_item("Jane Roe")], settings)

    added = _new_stream_text(valid_pdf_bytes, rendered)
    assert len(added) == 1
    text = added[0]
    assert text.startswith("q\n")
    assert text.rstrip().endswith("Q")
    assert "(Jane Roe) Tj" in text
    assert "Reason:" not in text
    assert "ID:" not in text

    tm = re.search(r"1 0 0 1 ([\d.]+) ([\d.]+) Tm", text)
    x, y = float(tm.group(1)), float(tm.group(2))
    assert 61.2 <= x <= 61.2 + 183.6
    assert 673.2 <= y <= 673.2 + 39.6
    assert "/AcroForm" not in rendered.Root


def test_scenario_b_render(valid_pdf_bytes):
    settings = RenderSettings(add_signature_id=True, require_signing_reason=True)
    context = SignerContext(
        submitter_id=42, email="jane@example.com", signed_at=SIGNED_AT, reason="Approve"
    )
    rendered = _render(valid_pdf_bytes, [_item("Jane", context=context)], settings)
    text = _new_stream_text(valid_pdf_bytes, rendered)[0]
    for line in (
        "(Reason: Approve) Tj",
        "(ID: F7600000-F760-0000-F760-0000F7600000) Tj",
        "(jane@example.com) Tj",
        "(01/06/2024, 17:00:00) Tj",
        "(Jane) Tj",
    ):
        assert line in text
    assert text.index("Reason: Approve") < text.index("01/06/2024")


def test_fonts_registered(valid_pdf_bytes):
    rendered = _render(valid_pdf_bytes, [_item("Jane")])
    fonts = rendered.pages[0].obj.Resources.Font
    assert fonts.LmsHelv.BaseFont == "/Helvetica"
    assert fonts.LmsTimes.BaseFont == "/Times-Italic"


def test_one_stream_per_signature(valid_pdf_bytes):
    items = [_item("Jane"), _item("true", field_type="checkbox", y=0.5)]
    rendered = _render(valid_pdf_bytes, items)
    assert len(_new_stream_text(valid_pdf_bytes, rendered)) == 2


def test_existing_contents_preserved(valid_pdf_bytes):
    with pikepdf.open(io.BytesIO(valid_pdf_bytes)) as original:
        original_data = [s.read_bytes() for s in _streams(original.pages[0])]
    rendered = _render(valid_pdf_bytes, [_item("Jane")])
    kept = [s.read_bytes() for s in _streams(rendered.pages[0])][: len(original_data)]
    assert kept == original_data


def test_render_on_second_page(three_page_pdf):
    rendered = _render(three_page_pdf, [_item("Jane", page=2)])
    assert _new_stream_text(three_page_pdf, rendered, 0) == []
    assert len(_new_stream_text(three_page_pdf, rendered, 1)) == 1


def test_empty_text_value_skipped(valid_pdf_bytes):
    rendered = _render(valid_pdf_bytes, [_item("", field_type="text")])
    assert _new_stream_text(valid_pdf_bytes, rendered) == []


def test_default_value_used_when_value_missing(valid_pdf_bytes):
    item = RenderItem(
        FieldDescriptor(page=1, x=0.1, y=0.1, width=0.3, height=0.05, default_value="N/A"),
        None,
        SignerContext(submitter_id=1),
    )
    text = _new_stream_text(valid_pdf_bytes, _render(valid_pdf_bytes, [item]))[0]
    assert "(N/A) Tj" in text


def test_empty_signature_still_draws_caption(valid_pdf_bytes):
    settings = RenderSettings(add_signature_id=True)
    rendered = _render(valid_pdf_bytes, [_item("")], settings)
    added = _new_stream_text(valid_pdf_bytes, rendered)
    assert len(added) == 1
    assert "ID: " in added[0]
    assert "/LmsTimes" not in added[0]


def test_empty_signature_without_caption_skipped(valid_pdf_bytes):
    rendered = _render(valid_pdf_bytes, [_item("")])
    assert _new_stream_text(valid_pdf_bytes, rendered) == []


def test_page_out_of_range_skipped(valid_pdf_bytes, caplog):
    with caplog.at_level("WARNING", logger="letmesign.core.render.renderer"):
        rendered = _render(valid_pdf_bytes, [_item("Jane", page=5), _item("Roe")])
    assert "page 5" in caplog.text
    added = _new_stream_text(valid_pdf_bytes, rendered)
    assert len(added) == 1
    assert "(Roe) Tj" in added[0]


def test_unsupported_type_drawn_as_text(valid_pdf_bytes, caplog):
    with caplog.at_level("WARNING", logger="letmesign.core.render.renderer"):
        rendered = _render(valid_pdf_bytes, [_item("raw value", field_type="hologram")])
    assert "hologram" in caplog.text
    assert "(raw value) Tj" in _new_stream_text(valid_pdf_bytes, rendered)[0]


def test_malformed_ink_draws_error_box(valid_pdf_bytes):
    rendered = _render(valid_pdf_bytes, [_item("[[{broken"), _item("Roe", y=0.5)])
    added = _new_stream_text(valid_pdf_bytes, rendered)
    assert len(added) == 2
    assert "[ERROR: " in added[0]
    assert "(Roe) Tj" in added[1]


def test_mediabox_origin_offset():
    pdf = pikepdf.Pdf.new()
    pdf.add_blank_page(page_size=(612, 792))
    pdf.pages[0].obj.MediaBox = pikepdf.Array([10, 20, 622, 812])
    buf = io.BytesIO()
    pdf.save(buf)
    source = buf.getvalue()

    item = _item("true", field_type="checkbox", x=0.0, y=0.0, width=0.1, height=0.1)
    text = _new_stream_text(source, _render(source, [item]))[0]
    # Box is 61.2 x 79.2 at the page's top-left corner; the square is centred
    assert "10.00 741.80 61.20 61.20 re" in text


def test_render_invalid_pdf():
    with pytest.raises(PdfStructureError):
        render_signatures(b"not a pdf", [])


def test_render_no_items_is_valid_pdf(valid_pdf_bytes):
    out = render_signatures(valid_pdf_bytes, [])
    assert out.startswith(b"%PDF-")


# ── FieldDescriptor / filtering ───────────────────────────────────


def test_field_descriptor_from_dict():
    fld = FieldDescriptor.from_dict(
        {"page": 2, "x": 10, "y": 20, "width": 30, "height": 40, "default_value": "d"}
    )
    assert fld == FieldDescriptor(page=2, x=10, y=20, width=30, height=40, default_value="d")


def test_field_descriptor_from_dict_aliases():
    fld = FieldDescriptor.from_dict(
        {"x": 1, "y": 2, "w": 3, "h": 4, "type": "checkbox", "coordinate_mode": "absolute"}
    )
    assert fld.page == 1
    assert fld.field_type == "checkbox"
    assert fld.width == 3
    assert fld.coordinate_mode is CoordinateMode.ABSOLUTE


def test_field_descriptor_from_dict_missing_key():
    with pytest.raises(ValueError, match="'x'"):
        FieldDescriptor.from_dict({"y": 1, "width": 1, "height": 1})


def test_filter_fields_for_submitter():
    fields = [
        FieldDescriptor(page=1, x=0, y=0, width=1, height=1, name="a", partner="First Party"),
        FieldDescriptor(page=1, x=0, y=0, width=1, height=1, name="b", partner="jane@example.com"),
        FieldDescriptor(page=1, x=0, y=0, width=1, height=1, name="c", partner="Second Party"),
        FieldDescriptor(page=1, x=0, y=0, width=1, height=1, name="d"),
    ]
    kept = filter_fields_for_submitter(fields, "First Party", "jane@example.com")
    assert [f.name for f in kept] == ["a", "b", "d"]
    assert [f.name for f in filter_fields_for_submitter(fields, None, None)] == ["d"]


def test_signer_context_never_renders_ip(valid_pdf_bytes):
    context = SignerContext(
        submitter_id=1, email="a@b.c", ip="10.1.2.3", user_agent="Agent/1.0", signed_at=SIGNED_AT
    )
    rendered = _render(
        valid_pdf_bytes, [_item("Jane", context=context)], RenderSettings(add_signature_id=True)
    )
    text = _new_stream_text(valid_pdf_bytes, rendered)[0]
    assert "10.1.2.3" not in text
    assert "Agent/1.0" not in text


def test_make_pdf_helper_pages(make_pdf):
    with pikepdf.open(io.BytesIO(make_pdf(pages=2))) as pdf:
        assert len(pdf.pages) == 2
