"""Tests for layersign.core.pdf — ByteRange arithmetic, placeholders, incremental updates.

Everything here works on unsigned, prepared documents; signing itself
is covered in test_signing.py.
"""

from __future__ import annotations

import io
import re
from datetime import datetime, timedelta, timezone

import pikepdf
import pytest

from layersign.constants import MAX_RESERVED_SIZE
from layersign.core.appearance import build_appearance, load_signature_image
from layersign.core.pdf import (
    BYTERANGE_PLACEHOLDER,
    ByteRange,
    PreparedDocument,
    SignatureMetadata,
    allocate_sig_objects,
    assemble_incremental_update,
    build_xref_and_trailer,
    fill_signature_field,
    find_byte_ranges,
    find_empty_signature_field,
    find_root_ref,
    find_signature_fields,
    install_signature_field,
    load_prepared_document,
    patch_byterange,
    pdf_text_string,
)
from layersign.core.pdf.asn1 import extract_der_from_padded_hex
from layersign.core.pdf.objects import RawObject
from layersign.core.pdf.render import pdf_date
from layersign.errors import (
    ConfigError,
    DocumentError,
    InvalidPage,
    MalformedDocument,
    RectangleOutOfBounds,
    SignatureFieldNotFound,
)

SIGNED_AT = datetime(2026, 2, 7, 9, 51, 42, tzinfo=timezone(timedelta(hours=4)))
METADATA = SignatureMetadata(
    signer_name="Alice", location="Tbilisi", reason="Approved", signing_time=SIGNED_AT
)
RECT = (50.0, 50.0, 200.0, 70.0)


def _appearance(width=200.0, height=70.0, image=None):
    return build_appearance(
        width, height, "Alice", "Tbilisi", SIGNED_AT, reason="Approved", image=image
    )


def _install(document, *, page=1, rect=RECT, reserved=8192, field_name=None, image=None):
    return install_signature_field(
        document,
        page,
        rect,
        _appearance(rect[2], rect[3], image),
        reserved,
        METADATA,
        field_name=field_name,
    )


def _open(data: bytes) -> pikepdf.Pdf:
    return pikepdf.open(io.BytesIO(data))


def _xref_offsets(data: bytes) -> dict[int, int]:
    """Object offsets listed in the last xref section."""
    start = int(re.findall(rb"startxref\s+(\d+)", data)[-1])
    section = data[start:].split(b"trailer")[0].decode("ascii")
    lines = section.split("\n")[1:]
    offsets: dict[int, int] = {}
    i = 0
    while i < len(lines):
        header = lines[i].strip()
        if not header:
            i += 1
            continue
        first, count = (int(v) for v in header.split())
        for k in range(count):
            offsets[first + k] = int(lines[i + 1 + k][:10])
        i += 1 + count
    return offsets


# ── ByteRange ────────────────────────────────────────────────────────


def test_byterange_from_placeholder():
    br = ByteRange.from_placeholder(100, 120, 300)
    assert br == (0, 100, 120, 180)
    assert br.gap_start == 100
    assert br.gap_end == 120
    assert br.hex_start == 101
    assert br.hex_length == 18
    assert br.end == 300
    assert br.covers(300)
    assert not br.covers(301)


def test_byterange_content():
    data = b"A" * 10 + b"<0000>" + b"B" * 4
    br = ByteRange.from_placeholder(10, 16, len(data))
    assert br.content(data) == b"A" * 10 + b"B" * 4
    assert br.spans() == ((0, 10), (16, 20))


def test_byterange_to_pdf_fixed_width():
    br = ByteRange(0, 1234, 5678, 90)
    raw = br.to_pdf()
    assert len(raw) == len(BYTERANGE_PLACEHOLDER)
    assert raw == b"/ByteRange [         0       1234       5678         90]"
    assert ByteRange.parse(raw) == br


def test_byterange_parse_invalid():
    with pytest.raises(MalformedDocument, match="Not a ByteRange"):
        ByteRange.parse(b"/Contents <00>")


@pytest.mark.parametrize(
    ("values", "total", "message"),
    [
        ((5, 10, 20, 10), 30, "offset1 should be 0"),
        ((0, 0, 20, 10), 30, "length1 must be positive"),
        ((0, 10, 11, 10), 21, "leaves no room"),
        ((0, 10, 20, 50), 30, "beyond EOF"),
    ],
)
def test_byterange_validate(values, total, message):
    with pytest.raises(MalformedDocument, match=message):
        ByteRange(*values).validate(total)


def test_byterange_validate_prefix_is_allowed():
    """Earlier revisions cover only a prefix of the file."""
    ByteRange(0, 10, 20, 10).validate(100)


# ── PreparedDocument ─────────────────────────────────────────────────


def test_prepared_document_checks_brackets():
    data = b"A" * 10 + b"(0000)" + b"B" * 4
    with pytest.raises(MalformedDocument, match="Expected '<'"):
        PreparedDocument(data, ByteRange.from_placeholder(10, 16, len(data)), 10)


def test_prepared_document_must_cover_document():
    data = b"A" * 10 + b"<0000>" + b"B" * 4
    with pytest.raises(MalformedDocument, match="does not cover"):
        PreparedDocument(data + b"tail", ByteRange.from_placeholder(10, 16, len(data)), 10)


def test_prepared_document_properties():
    data = b"A" * 10 + b"<0000>" + b"B" * 4
    prepared = PreparedDocument(data, ByteRange.from_placeholder(10, 16, len(data)), 8)
    assert prepared.reserved_bytes == 2
    assert prepared.hex_start == 11
    assert prepared.hex_length == 4
    assert prepared.appended_length == len(data) - 8
    assert prepared.signed_content() == b"A" * 10 + b"B" * 4


# ── DER extraction ───────────────────────────────────────────────────


def test_extract_der_keeps_trailing_zero_bytes():
    der = bytes([0x30, 0x03, 0x02, 0x01, 0x00])
    assert extract_der_from_padded_hex(der.hex() + "0" * 20) == der


def test_extract_der_rejects_non_sequence():
    with pytest.raises(ValueError, match="Expected ASN.1 SEQUENCE"):
        extract_der_from_padded_hex("3103020100")


def test_extract_der_rejects_indefinite_length():
    with pytest.raises(ValueError, match="Indefinite length"):
        extract_der_from_padded_hex("3080020100")


# ── String and date helpers ──────────────────────────────────────────


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("Alice", "(Alice)"),
        ("a(b)c\\", "(a\\(b\\)c\\\\)"),
        ("Zürich", "(Zürich)"),
        ("ა", "<FEFF10D0>"),
    ],
)
def test_pdf_text_string(text, expected):
    assert pdf_text_string(text) == expected


def test_pdf_date_is_utc():
    assert pdf_date(SIGNED_AT) == "D:20260207055142+00'00'"


# ── Object allocation ────────────────────────────────────────────────


def test_allocate_sig_objects():
    nums = allocate_sig_objects(10)
    assert nums["sig"] == 10
    assert nums["annot"] == 11
    assert nums["font"] == 12
    assert nums["layers"] == {"n0": 13, "n1": 14, "n2": 15, "n3": 16, "n4": 17}
    assert nums["frm"] == 18
    assert nums["ap"] == 19
    assert nums["img"] is None
    assert nums["new_size"] == 20


def test_allocate_sig_objects_with_image():
    nums = allocate_sig_objects(10, has_image=True, has_smask=True)
    assert nums["img"] == 20
    assert nums["smask"] == 21
    assert nums["new_size"] == 22


def test_allocate_sig_objects_signature_only():
    nums = allocate_sig_objects(7, with_widget=False, with_appearance=False)
    assert nums["sig"] == 7
    assert nums["annot"] is None
    assert nums["font"] is None
    assert nums["layers"] == {}
    assert nums["new_size"] == 8


# ── Incremental update primitives ────────────────────────────────────


def test_find_root_ref_uses_last_trailer():
    data = b"trailer << /Root 1 0 R >>\n...\ntrailer << /Root 7 0 R >>"
    assert find_root_ref(data) == (7, 0)


def test_find_root_ref_missing():
    with pytest.raises(MalformedDocument, match="/Root"):
        find_root_ref(b"%PDF-1.7\nno trailer here")


def test_build_xref_and_trailer():
    raw = build_xref_and_trailer(
        xref_entries={5: (100, 0), 6: (200, 0), 9: (300, 0)},
        new_size=10,
        prev_xref=50,
        root_ref=(1, 0),
        trailer_extra=["/Info 2 0 R"],
        xref_offset=400,
    )
    assert raw.startswith(b"xref\n5 2\n")
    assert b"\n9 1\n" in raw
    assert b"0000000100 00000 n\r\n" in raw
    assert b"/Size 10" in raw
    assert b"/Prev 50" in raw
    assert b"/Root 1 0 R" in raw
    assert b"/Info 2 0 R" in raw
    assert raw.endswith(b"startxref\n400\n%%EOF\n")


def test_build_xref_and_trailer_empty():
    with pytest.raises(MalformedDocument, match="no objects"):
        build_xref_and_trailer({}, 1, 0, (1, 0), [], 0)


def test_assemble_adds_missing_newline():
    original = b"%PDF-1.7\n...\n%%EOF"
    result = assemble_incremental_update(
        original, [RawObject(b"5 0 obj\nnull\nendobj\n", 5)], 6, 9, (1, 0), []
    )
    assert result.startswith(original + b"\n5 0 obj")
    assert _xref_offsets(result) == {5: len(original) + 1}


def test_assemble_rejects_duplicate_objects():
    objs = [RawObject(b"5 0 obj\nnull\nendobj\n", 5), RawObject(b"5 0 obj\n1\nendobj\n", 5)]
    with pytest.raises(MalformedDocument, match="written twice"):
        assemble_incremental_update(b"%PDF-1.7\n", objs, 6, 9, (1, 0), [])


def test_patch_byterange_ignores_earlier_placeholders():
    update = BYTERANGE_PLACEHOLDER + b" /Contents <0000>"
    data = b"old " + update + b" new " + update + b" end"
    update_start = len(b"old " + update)
    patched, br = patch_byterange(data, update_start, 4)
    assert len(patched) == len(data)
    # the first placeholder is untouched
    assert patched.startswith(b"old " + update)
    assert patched[br.gap_start : br.gap_end] == b"<0000>"
    assert br.gap_start > update_start
    assert find_byte_ranges(patched)[-1] == br


def test_patch_byterange_missing_contents():
    with pytest.raises(MalformedDocument, match="Contents placeholder"):
        patch_byterange(BYTERANGE_PLACEHOLDER, 0, 4)


# ── install_signature_field ──────────────────────────────────────────


def test_install_appends_only(valid_pdf_bytes):
    prepared = _install(valid_pdf_bytes)
    assert prepared.data.startswith(valid_pdf_bytes)
    assert prepared.original_length == len(valid_pdf_bytes)
    assert prepared.field_name == "Signature1"
    assert prepared.signing_time == SIGNED_AT
    assert prepared.reserved_bytes == 8192
    assert prepared.hex_length == 16384


def test_install_byterange_brackets_placeholder(valid_pdf_bytes):
    prepared = _install(valid_pdf_bytes)
    br = prepared.byte_range
    data = prepared.data
    assert br.offset1 == 0
    assert br.covers(len(data))
    assert data[br.gap_start : br.gap_start + 1] == b"<"
    assert data[br.gap_end - 1 : br.gap_end] == b">"
    assert data[br.hex_start : br.hex_start + br.hex_length] == b"0" * 16384
    assert find_byte_ranges(data) == [br]


def test_install_xref_offsets_point_at_objects(valid_pdf_bytes):
    prepared = _install(valid_pdf_bytes)
    offsets = _xref_offsets(prepared.data)
    assert offsets
    for num, offset in offsets.items():
        assert prepared.data[offset:].startswith(f"{num} 0 obj".encode())
        assert offset >= len(valid_pdf_bytes)


def test_install_trailer_links_previous_revision(valid_pdf_bytes):
    prepared = _install(valid_pdf_bytes)
    prev = re.findall(rb"startxref\s+(\d+)", valid_pdf_bytes)[-1]
    tail = prepared.data[len(valid_pdf_bytes) :]
    assert b"/Prev " + prev in tail
    assert re.search(rb"/ID\s*\[", tail)
    assert tail.endswith(b"%%EOF\n")


def test_install_structure(valid_pdf_bytes):
    prepared = _install(valid_pdf_bytes)
    with _open(prepared.data) as pdf:
        acroform = pdf.Root.AcroForm
        assert int(acroform.SigFlags) == 3
        assert len(acroform.Fields) == 1
        widget = acroform.Fields[0]
        assert widget.Subtype == pikepdf.Name.Widget
        assert widget.FT == pikepdf.Name.Sig
        assert str(widget.T) == "Signature1"
        assert int(widget.F) == 132
        assert [float(v) for v in widget.Rect] == [50.0, 50.0, 250.0, 120.0]

        page = pdf.pages[0].obj
        assert widget.P.objgen == page.objgen
        assert [a.objgen for a in page.Annots] == [widget.objgen]

        sig = widget.V
        assert sig.Type == pikepdf.Name.Sig
        assert sig.Filter == pikepdf.Name("/Adobe.PPKLite")
        assert sig.SubFilter == pikepdf.Name("/adbe.pkcs7.detached")
        assert bytes(sig.Contents) == b"\x00" * 8192
        assert [int(v) for v in sig.ByteRange] == list(prepared.byte_range)
        assert str(sig.Name) == "Alice"
        assert str(sig.Location) == "Tbilisi"
        assert str(sig.Reason) == "Approved"
        assert str(sig.M) == "D:20260207055142+00'00'"


def test_install_appearance_objects(valid_pdf_bytes):
    prepared = _install(valid_pdf_bytes)
    appearance = _appearance()
    with _open(prepared.data) as pdf:
        ap = pdf.Root.AcroForm.Fields[0].AP.N
        assert ap.read_bytes() == b"/FRM Do"
        assert [float(v) for v in ap.BBox] == [0.0, 0.0, 200.0, 70.0]

        frm = ap.Resources.XObject.FRM
        assert frm.read_bytes() == appearance.composed_stream
        layers = frm.Resources.XObject
        assert sorted(layers.keys()) == ["/n0", "/n1", "/n2", "/n3", "/n4"]
        assert layers.n3.read_bytes() == b"% DSBlank\n"
        assert layers.n2.read_bytes() == appearance.layer("n2").stream
        assert "/Font" not in layers.n0.Resources

        font = layers.n1.Resources.Font.F1
        assert font.BaseFont == pikepdf.Name("/Helvetica-Bold")
        assert font.Encoding == pikepdf.Name.WinAnsiEncoding
        # one font object shared by every text layer
        assert layers.n4.Resources.Font.F1.objgen == font.objgen


def test_install_with_image(valid_pdf_bytes, sample_image):
    image = load_signature_image(sample_image)
    prepared = _install(valid_pdf_bytes, image=image)
    with _open(prepared.data) as pdf:
        n2 = pdf.Root.AcroForm.Fields[0].AP.N.Resources.XObject.FRM.Resources.XObject.n2
        img = n2.Resources.XObject.Img1
        assert img.Subtype == pikepdf.Name.Image
        assert int(img.Width) == 200
        assert int(img.Height) == 50
        assert "/SMask" in img


def test_install_keeps_existing_fields_and_annots(pdf_with_sig_field):
    prepared = _install(pdf_with_sig_field)
    with _open(prepared.data) as pdf:
        names = [str(f.T) for f in pdf.Root.AcroForm.Fields]
        assert names == ["Approval", "Signature1"]
        assert len(pdf.pages[0].obj.Annots) == 2


def test_install_second_placeholder_gets_next_name(valid_pdf_bytes):
    first = _install(valid_pdf_bytes)
    second = _install(first.data)
    assert second.field_name == "Signature2"
    assert second.data.startswith(first.data)
    # the first placeholder is left as it was
    assert find_byte_ranges(second.data)[0] == first.byte_range


def test_install_custom_field_name(valid_pdf_bytes):
    prepared = _install(valid_pdf_bytes, field_name="Manager")
    assert prepared.field_name == "Manager"


@pytest.mark.parametrize("name", ["", "parent.child"])
def test_install_invalid_field_name(valid_pdf_bytes, name):
    with pytest.raises(DocumentError, match="Invalid signature field name"):
        _install(valid_pdf_bytes, field_name=name)


def test_install_duplicate_field_name(pdf_with_sig_field):
    with pytest.raises(DocumentError, match="already exists"):
        _install(pdf_with_sig_field, field_name="Approval")


@pytest.mark.parametrize("page", [0, 2, -1])
def test_install_invalid_page(valid_pdf_bytes, page):
    with pytest.raises(InvalidPage):
        _install(valid_pdf_bytes, page=page)


@pytest.mark.parametrize(
    "rect",
    [
        (-10.0, 0.0, 10.0, 10.0),
        (500.0, 700.0, 200.0, 200.0),
        (50.0, 50.0, 0.0, 70.0),
        (50.0, 50.0, 200.0, float("nan")),
    ],
    ids=["negative-x", "off-page", "zero-width", "nan"],
)
def test_install_bad_rect(valid_pdf_bytes, rect):
    appearance = _appearance()
    with pytest.raises(RectangleOutOfBounds):
        install_signature_field(valid_pdf_bytes, 1, rect, appearance, 8192, METADATA)


@pytest.mark.parametrize("reserved", [0, -1, MAX_RESERVED_SIZE + 1, True, 8192.0])
def test_install_bad_reserved_size(valid_pdf_bytes, reserved):
    with pytest.raises(ConfigError, match="Reserved signature size"):
        _install(valid_pdf_bytes, reserved=reserved)


def test_install_not_a_pdf():
    with pytest.raises(MalformedDocument, match="not a PDF"):
        _install(b"hello world")


def test_install_empty_document():
    with pytest.raises(MalformedDocument, match="empty"):
        _install(b"")


def test_install_encrypted_document():
    pdf = pikepdf.Pdf.new()
    pdf.add_blank_page()
    buf = io.BytesIO()
    pdf.save(buf, encryption=pikepdf.Encryption(owner="owner", user="user"))
    with pytest.raises(MalformedDocument, match="Encrypted"):
        _install(buf.getvalue())


def test_install_warns_on_size_mismatch(valid_pdf_bytes, caplog):
    appearance = _appearance(100, 30)
    with caplog.at_level("WARNING", logger="layersign.core.pdf.placeholder"):
        install_signature_field(valid_pdf_bytes, 1, RECT, appearance, 8192, METADATA)
    assert "does not match rectangle" in caplog.text


# ── Field discovery ──────────────────────────────────────────────────


def test_find_signature_fields_none(valid_pdf_bytes):
    assert find_signature_fields(valid_pdf_bytes) == []


def test_find_signature_fields(pdf_with_sig_field):
    (field,) = find_signature_fields(pdf_with_sig_field)
    assert field.name == "Approval"
    assert field.page == 1
    assert field.rect == (100.0, 100.0, 300.0, 160.0)
    assert not field.signed
    assert field.is_visible
    assert field.widget_objgen == field.objgen


def test_find_signature_fields_invisible(pdf_with_two_sig_fields):
    hidden, approval = find_signature_fields(pdf_with_two_sig_fields)
    assert hidden.name == "Hidden"
    assert not hidden.is_visible
    assert approval.is_visible


def test_find_signature_fields_sees_prepared_field(valid_pdf_bytes):
    prepared = _install(valid_pdf_bytes)
    (field,) = find_signature_fields(prepared.data)
    assert field.name == "Signature1"
    assert field.signed
    assert field.rect == (50.0, 50.0, 250.0, 120.0)


def test_find_signature_fields_hierarchical_name():
    pdf = pikepdf.Pdf.new()
    pdf.add_blank_page()
    kid = pdf.make_indirect(
        pikepdf.Dictionary(
            T=pikepdf.String("sig"),
            FT=pikepdf.Name.Sig,
            Type=pikepdf.Name.Annot,
            Subtype=pikepdf.Name.Widget,
            Rect=pikepdf.Array([10, 10, 110, 40]),
        )
    )
    parent = pdf.make_indirect(
        pikepdf.Dictionary(T=pikepdf.String("approvals"), Kids=pikepdf.Array([kid]))
    )
    kid.Parent = parent
    pdf.pages[0].obj.Annots = pikepdf.Array([kid])
    pdf.Root.AcroForm = pikepdf.Dictionary(Fields=pikepdf.Array([parent]))
    buf = io.BytesIO()
    pdf.save(buf)

    (field,) = find_signature_fields(buf.getvalue())
    assert field.name == "approvals.sig"
    assert field.page == 1


def test_find_empty_signature_field_first_unsigned(pdf_with_two_sig_fields):
    assert find_empty_signature_field(pdf_with_two_sig_fields).name == "Hidden"


def test_find_empty_signature_field_by_name(pdf_with_two_sig_fields):
    assert find_empty_signature_field(pdf_with_two_sig_fields, "Approval").name == "Approval"


def test_find_empty_signature_field_missing(pdf_with_sig_field):
    with pytest.raises(SignatureFieldNotFound, match="'Nope' not found"):
        find_empty_signature_field(pdf_with_sig_field, "Nope")


def test_find_empty_signature_field_none(valid_pdf_bytes):
    with pytest.raises(SignatureFieldNotFound, match="no unsigned"):
        find_empty_signature_field(valid_pdf_bytes)


# ── fill_signature_field ─────────────────────────────────────────────


def test_fill_existing_field(pdf_with_sig_field):
    field = find_empty_signature_field(pdf_with_sig_field, "Approval")
    prepared = fill_signature_field(
        pdf_with_sig_field, field, _appearance(200, 60), 8192, METADATA
    )
    assert prepared.data.startswith(pdf_with_sig_field)
    assert prepared.field_name == "Approval"
    assert prepared.reserved_bytes == 8192

    with _open(prepared.data) as pdf:
        acroform = pdf.Root.AcroForm
        assert int(acroform.SigFlags) == 3
        assert len(acroform.Fields) == 1
        widget = acroform.Fields[0]
        assert widget.objgen == field.objgen
        assert widget.V.Type == pikepdf.Name.Sig
        assert widget.AP.N.read_bytes() == b"/FRM Do"
        assert [float(v) for v in widget.Rect] == [100.0, 100.0, 300.0, 160.0]


def test_fill_invisible_field_has_no_appearance(pdf_with_two_sig_fields):
    field = find_empty_signature_field(pdf_with_two_sig_fields, "Hidden")
    prepared = fill_signature_field(
        pdf_with_two_sig_fields, field, _appearance(), 8192, METADATA
    )
    with _open(prepared.data) as pdf:
        hidden = pdf.get_object(field.objgen)
        assert "/V" in hidden
        assert "/AP" not in hidden


def test_fill_signed_field_rejected(pdf_with_sig_field):
    field = find_empty_signature_field(pdf_with_sig_field)._replace(signed=True)
    with pytest.raises(SignatureFieldNotFound, match="already signed"):
        fill_signature_field(pdf_with_sig_field, field, None, 8192, METADATA)


def test_fill_bad_reserved_size(pdf_with_sig_field):
    field = find_empty_signature_field(pdf_with_sig_field)
    with pytest.raises(ConfigError):
        fill_signature_field(pdf_with_sig_field, field, None, 0, METADATA)


# ── load_prepared_document ───────────────────────────────────────────


def test_load_prepared_document(valid_pdf_bytes):
    prepared = _install(valid_pdf_bytes)
    reloaded = load_prepared_document(prepared.data)
    assert reloaded.byte_range == prepared.byte_range
    assert reloaded.field_name == "Signature1"
    assert reloaded.original_length == len(valid_pdf_bytes)
    assert reloaded.signed_content() == prepared.signed_content()


def test_load_prepared_document_no_placeholder(valid_pdf_bytes):
    with pytest.raises(MalformedDocument, match="No signature placeholder"):
        load_prepared_document(valid_pdf_bytes)


def test_load_prepared_document_already_signed(valid_pdf_bytes):
    prepared = _install(valid_pdf_bytes)
    start = prepared.hex_start
    data = prepared.data[:start] + b"3082" + prepared.data[start + 4 :]
    with pytest.raises(MalformedDocument, match="already holds a signature"):
        load_prepared_document(data)
