import logging

from pypdf import PdfWriter
from pypdf.generic import ArrayObject, DecodedStreamObject, DictionaryObject, IndirectObject, NameObject

from modules.nda.services import pdf_forms

logger = logging.getLogger(__name__)


class Flattener:
    """
    Bakes the widget appearances of a filled form into page content and
    removes the interactive form. Running it on a document with no form left
    changes nothing and returns 0.
    """

    def flatten(self, document: PdfWriter) -> int:
        flattened = 0

        for page in document.pages:
            annots = page.get("/Annots")
            annots = annots.get_object() if annots is not None else None
            if not annots:
                continue

            kept = ArrayObject()
            operations = []
            xobjects = {}

            for ref in annots:
                annotation = ref.get_object()
                if annotation.get("/Subtype") != "/Widget":
                    kept.append(ref)
                    continue

                flattened += 1
                appearance_ref = pdf_forms.normal_appearance(annotation)
                if appearance_ref is None:
                    continue

                if not isinstance(appearance_ref, IndirectObject):
                    appearance_ref = document._add_object(appearance_ref)
                name = NameObject(f"/FlatField{flattened}")
                xobjects[name] = appearance_ref
                operations.append(self._placement(annotation, appearance_ref.get_object(), name))

            if operations:
                self._append_content(document, page, operations, xobjects)

            if kept:
                page[NameObject("/Annots")] = kept
            else:
                del page["/Annots"]

        root = document._root_object
        if "/AcroForm" in root:
            del root["/AcroForm"]

        if flattened:
            logger.info("[NDA] Flattened %d form widgets", flattened)
        return flattened

    @staticmethod
    def _placement(annotation: DictionaryObject, appearance, name: NameObject) -> bytes:
        """Operators drawing an appearance stream into the annotation rectangle"""
        x1, y1, x2, y2 = [float(v) for v in annotation["/Rect"]]
        llx, lly = min(x1, x2), min(y1, y2)
        width, height = abs(x2 - x1), abs(y2 - y1)

        bx1, by1, bx2, by2 = [float(v) for v in appearance.get("/BBox", [0, 0, width, height])]
        box_w, box_h = (bx2 - bx1) or width, (by2 - by1) or height
        sx, sy = width / box_w, height / box_h
        tx, ty = llx - bx1 * sx, lly - by1 * sy

        return f"q {sx:.6f} 0 0 {sy:.6f} {tx:.4f} {ty:.4f} cm {name} Do Q".encode()

    @staticmethod
    def _append_content(document: PdfWriter, page, operations, xobjects) -> None:
        resources = page.get("/Resources")
        resources = resources.get_object() if resources is not None else None
        if resources is None:
            resources = DictionaryObject()
            page[NameObject("/Resources")] = resources

        page_xobjects = resources.get("/XObject")
        page_xobjects = page_xobjects.get_object() if page_xobjects is not None else None
        if page_xobjects is None:
            page_xobjects = DictionaryObject()
            resources[NameObject("/XObject")] = page_xobjects
        page_xobjects.update(xobjects)

        # Isolate the original content's graphics state from the overlay
        original = page.get_contents()
        original_data = original.get_data() if original is not None else b""

        stream = DecodedStreamObject()
        stream.set_data(b"q\n" + original_data + b"\nQ\n" + b"\n".join(operations) + b"\n")
        page[NameObject("/Contents")] = document._add_object(stream.flate_encode())
