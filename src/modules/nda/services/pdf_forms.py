"""
Low level AcroForm helpers on top of pypdf.

A loaded document is a `PdfWriter` cloned from the source bytes, so fields
can be edited in place and saved back to bytes. Field widgets are located
through the page `/Annots` arrays; appearances are plain form XObjects.
"""

import io
from dataclasses import dataclass
from typing import Iterator, List, Optional, Tuple

from PIL import Image
from pypdf import PdfReader, PdfWriter
from pypdf.generic import (
    ArrayObject,
    DecodedStreamObject,
    DictionaryObject,
    FloatObject,
    IndirectObject,
    NameObject,
    NumberObject,
    PdfObject,
    StreamObject,
    TextStringObject,
)

HELVETICA = NameObject("/Helv")


@dataclass
class FieldWidget:
    """A widget annotation together with the page it sits on"""
    name: str
    annotation: DictionaryObject
    page_index: int

    @property
    def rect(self) -> Tuple[float, float, float, float]:
        x1, y1, x2, y2 = [float(v) for v in self.annotation["/Rect"]]
        return min(x1, x2), min(y1, y2), max(x1, x2), max(y1, y2)

    @property
    def width(self) -> float:
        llx, _, urx, _ = self.rect
        return urx - llx

    @property
    def height(self) -> float:
        _, lly, _, ury = self.rect
        return ury - lly


def load_document(data: bytes) -> PdfWriter:
    reader = PdfReader(io.BytesIO(data))
    return PdfWriter(clone_from=reader)


def save_document(document: PdfWriter) -> bytes:
    buffer = io.BytesIO()
    document.write(buffer)
    return buffer.getvalue()


def _resolve(obj: Optional[PdfObject]):
    return obj.get_object() if obj is not None else None


def _inherited(annotation: DictionaryObject, key: str):
    """Look up a field attribute on the widget or any of its parents"""
    node = annotation
    while node is not None:
        if key in node:
            return node[key]
        node = _resolve(node.get("/Parent"))
    return None


def full_field_name(annotation: DictionaryObject) -> str:
    parts: List[str] = []
    node = annotation
    while node is not None:
        if "/T" in node:
            parts.append(str(node["/T"]))
        node = _resolve(node.get("/Parent"))
    return ".".join(reversed(parts))


def iter_widgets(document: PdfWriter) -> Iterator[FieldWidget]:
    for page_index, page in enumerate(document.pages):
        annots = _resolve(page.get("/Annots"))
        if not annots:
            continue
        for ref in annots:
            annotation = ref.get_object()
            if annotation.get("/Subtype") != "/Widget":
                continue
            yield FieldWidget(full_field_name(annotation), annotation, page_index)


def find_widgets(document: PdfWriter, name: str) -> List[FieldWidget]:
    """Widgets whose full or terminal name matches `name`"""
    return [
        widget for widget in iter_widgets(document)
        if widget.name == name or widget.name.rsplit(".", 1)[-1] == name
    ]


def field_type(widget: FieldWidget) -> Optional[str]:
    value = _inherited(widget.annotation, "/FT")
    return str(value) if value is not None else None


def field_names(document: PdfWriter) -> List[str]:
    return sorted({widget.name for widget in iter_widgets(document)})


def _field_dictionary(annotation: DictionaryObject) -> DictionaryObject:
    """The dictionary holding the field value (widget or its parent)"""
    if "/T" in annotation:
        return annotation
    parent = _resolve(annotation.get("/Parent"))
    return parent if parent is not None else annotation


def _add_stream(document: PdfWriter, stream: StreamObject) -> IndirectObject:
    return document._add_object(stream)


def embed_image(document: PdfWriter, image_bytes: bytes) -> Tuple[IndirectObject, int, int]:
    """
    Decode an image (PNG, JPEG, ...) and add it to the document as an image
    XObject; transparency is kept through a soft mask.
    """
    with Image.open(io.BytesIO(image_bytes)) as image:
        image.load()
        rgba = image.convert("RGBA")

    width, height = rgba.size
    if width == 0 or height == 0:
        raise ValueError("Signature image is empty")

    alpha = DecodedStreamObject()
    alpha.set_data(rgba.getchannel("A").tobytes())
    alpha = alpha.flate_encode()
    alpha.update({
        NameObject("/Type"): NameObject("/XObject"),
        NameObject("/Subtype"): NameObject("/Image"),
        NameObject("/Width"): NumberObject(width),
        NameObject("/Height"): NumberObject(height),
        NameObject("/ColorSpace"): NameObject("/DeviceGray"),
        NameObject("/BitsPerComponent"): NumberObject(8),
    })
    alpha_ref = _add_stream(document, alpha)

    pixels = DecodedStreamObject()
    pixels.set_data(rgba.convert("RGB").tobytes())
    pixels = pixels.flate_encode()
    pixels.update({
        NameObject("/Type"): NameObject("/XObject"),
        NameObject("/Subtype"): NameObject("/Image"),
        NameObject("/Width"): NumberObject(width),
        NameObject("/Height"): NumberObject(height),
        NameObject("/ColorSpace"): NameObject("/DeviceRGB"),
        NameObject("/BitsPerComponent"): NumberObject(8),
        NameObject("/SMask"): alpha_ref,
    })
    return _add_stream(document, pixels), width, height


def _form_xobject(document: PdfWriter, width: float, height: float,
                  content: bytes, resources: DictionaryObject) -> IndirectObject:
    stream = DecodedStreamObject()
    stream.set_data(content)
    stream.update({
        NameObject("/Type"): NameObject("/XObject"),
        NameObject("/Subtype"): NameObject("/Form"),
        NameObject("/FormType"): NumberObject(1),
        NameObject("/BBox"): ArrayObject([FloatObject(0), FloatObject(0), FloatObject(width), FloatObject(height)]),
        NameObject("/Resources"): resources,
    })
    return _add_stream(document, stream)


def image_appearance(document: PdfWriter, widget: FieldWidget, image_ref: IndirectObject,
                     image_width: int, image_height: int) -> IndirectObject:
    """Form XObject drawing the image centred in the widget, aspect ratio kept"""
    box_w, box_h = widget.width, widget.height
    scale = min(box_w / image_width, box_h / image_height)
    draw_w, draw_h = image_width * scale, image_height * scale
    offset_x, offset_y = (box_w - draw_w) / 2, (box_h - draw_h) / 2

    content = f"q {draw_w:.4f} 0 0 {draw_h:.4f} {offset_x:.4f} {offset_y:.4f} cm /Sig Do Q".encode()
    resources = DictionaryObject({
        NameObject("/XObject"): DictionaryObject({NameObject("/Sig"): image_ref}),
    })
    return _form_xobject(document, box_w, box_h, content, resources)


def set_button_appearance(widget: FieldWidget, appearance: IndirectObject) -> None:
    annotation = widget.annotation
    annotation[NameObject("/AP")] = DictionaryObject({NameObject("/N"): appearance})
    characteristics = _resolve(annotation.get("/MK"))
    if characteristics is None:
        characteristics = DictionaryObject()
        annotation[NameObject("/MK")] = characteristics
    characteristics[NameObject("/I")] = appearance


def _escape_text(value: str) -> bytes:
    raw = value.encode("latin-1", errors="replace")
    return raw.replace(b"\\", b"\\\\").replace(b"(", b"\\(").replace(b")", b"\\)")


def set_text_value(document: PdfWriter, widget: FieldWidget, value: str) -> None:
    """Set a text field value and give it a Helvetica appearance stream"""
    _field_dictionary(widget.annotation)[NameObject("/V")] = TextStringObject(value)

    box_w, box_h = widget.width, widget.height
    font_size = max(6.0, min(11.0, box_h * 0.7))
    baseline = max(1.0, (box_h - font_size) / 2 + font_size * 0.2)
    content = (
        b"/Tx BMC q BT "
        + f"/Helv {font_size:.2f} Tf 0 g 2 {baseline:.2f} Td (".encode()
        + _escape_text(value)
        + b") Tj ET Q EMC"
    )
    font = DictionaryObject({
        NameObject("/Type"): NameObject("/Font"),
        NameObject("/Subtype"): NameObject("/Type1"),
        NameObject("/BaseFont"): NameObject("/Helvetica"),
        NameObject("/Encoding"): NameObject("/WinAnsiEncoding"),
    })
    resources = DictionaryObject({
        NameObject("/Font"): DictionaryObject({HELVETICA: font}),
    })
    appearance = _form_xobject(document, box_w, box_h, content, resources)
    widget.annotation[NameObject("/AP")] = DictionaryObject({NameObject("/N"): appearance})


def normal_appearance(annotation: DictionaryObject) -> Optional[PdfObject]:
    """
    The `/AP /N` stream of a widget, or None. Checkbox style widgets keep one
    stream per state; the one selected by `/AS` is returned.
    """
    appearances = _resolve(annotation.get("/AP"))
    if not appearances or "/N" not in appearances:
        return None
    raw = appearances.raw_get("/N")
    normal = raw.get_object()
    if isinstance(normal, StreamObject):
        return raw
    if isinstance(normal, DictionaryObject):
        state = annotation.get("/AS")
        if state is not None and state in normal:
            return normal.raw_get(state)
    return None
