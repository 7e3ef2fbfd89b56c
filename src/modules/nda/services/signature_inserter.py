import base64
import binascii
import logging
import os
import re
from dataclasses import dataclass, field
from typing import Dict, Optional

from pypdf import PdfWriter

from modules.nda.services import pdf_forms

logger = logging.getLogger(__name__)

DATA_URL_RE = re.compile(r"^data:image/[\w.+-]+;base64,(?P<payload>.+)$", re.DOTALL)

PRIMARY = "primary"
COUNTER = "counter"


class SignatureSourceError(ValueError):
    """A signature source could not be resolved to image bytes"""


def is_image_data_url(source: Optional[str]) -> bool:
    """True for a `data:image/...;base64,` URL with a non-empty payload"""
    match = DATA_URL_RE.match((source or "").strip())
    return bool(match and match.group("payload").strip())


@dataclass
class InsertionResult:
    document: PdfWriter
    results: Dict[str, bool] = field(default_factory=dict)
    errors: Dict[str, str] = field(default_factory=dict)

    def succeeded(self, key: str) -> bool:
        return self.results.get(key, False)


def resolve_signature_source(source: Optional[str], field_name: str) -> bytes:
    """
    Turn a signature source into image bytes. A base64 data URL is decoded
    directly; anything else must be the path of an existing file.
    """
    if source:
        match = DATA_URL_RE.match(source.strip())
        if match:
            try:
                return base64.b64decode(match.group("payload"), validate=False)
            except (binascii.Error, ValueError) as exc:
                raise SignatureSourceError(f"Invalid signature data for field {field_name}") from exc
        if os.path.isfile(source):
            with open(source, "rb") as f:
                return f.read()
    raise SignatureSourceError(f"Invalid signature data for field {field_name}")


class SignatureInserter:
    """Sets the appearance of the signature button fields of an NDA"""

    def __init__(self, primary_field: str = "ReadersSignature", counter_field: str = "LizsSignature"):
        self.primary_field = primary_field
        self.counter_field = counter_field

    def insert(self, document: PdfWriter, primary_source: Optional[str],
               counter_source: Optional[str] = None) -> InsertionResult:
        result = InsertionResult(document=document)

        targets = [(PRIMARY, self.primary_field, primary_source)]
        if counter_source is not None:
            targets.append((COUNTER, self.counter_field, counter_source))

        for key, field_name, source in targets:
            try:
                self._insert_field(document, field_name, source)
                result.results[key] = True
                logger.info("[NDA] Signature inserted into field %s", field_name)
            except (SignatureSourceError, LookupError) as exc:
                result.results[key] = False
                result.errors[key] = str(exc)
                logger.warning("[NDA] %s", exc)
            except (OSError, ValueError) as exc:
                # Pillow raises UnidentifiedImageError (an OSError) for bad image bytes
                result.results[key] = False
                result.errors[key] = f"Could not embed signature into field {field_name}: {exc}"
                logger.warning("[NDA] Could not embed signature into field %s: %s", field_name, exc)

        if counter_source is None:
            result.results.setdefault(COUNTER, False)
        return result

    def _insert_field(self, document: PdfWriter, field_name: str, source: Optional[str]) -> None:
        image_bytes = resolve_signature_source(source, field_name)

        widgets = [
            widget for widget in pdf_forms.find_widgets(document, field_name)
            if pdf_forms.field_type(widget) == "/Btn"
        ]
        if not widgets:
            raise LookupError(f"Signature field {field_name} not found")

        image_ref, width, height = pdf_forms.embed_image(document, image_bytes)
        for widget in widgets:
            appearance = pdf_forms.image_appearance(document, widget, image_ref, width, height)
            pdf_forms.set_button_appearance(widget, appearance)
