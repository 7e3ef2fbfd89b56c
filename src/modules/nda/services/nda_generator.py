import logging
from datetime import date
from typing import Optional

from core.exceptions import NdaArtifactNotFoundError, PdfProcessingError
from modules.nda.models.nda_version import NdaVersion
from modules.nda.services import pdf_forms
from modules.nda.services.storage import NdaStorage
from modules.readers.models.reader import Reader

logger = logging.getLogger(__name__)

READER_NAME_FIELDS = [f"ReadersName{i}" for i in range(1, 8)]
CURRENT_DATE_FIELDS = [f"CurrentDate{i}" for i in range(1, 5)]
PIN_FIELD = "PIN"


def format_uk_date(value: date) -> str:
    return value.strftime("%d/%m/%Y")


class NdaGenerator:
    """Personalizes the current NDA template for one reader"""

    def __init__(self, storage: NdaStorage):
        self.storage = storage

    def generate(self, reader: Reader, version: NdaVersion, today: Optional[date] = None) -> str:
        """
        Fill the reader name, date and PIN text fields of the template and
        save the result as the reader's unsigned NDA. Signature fields are
        left interactive for the signing step.
        """
        template_path = self.storage.template_path(version.nda_template_path)
        if not self.storage.exists(template_path):
            raise NdaArtifactNotFoundError(template_path)

        try:
            document = pdf_forms.load_document(self.storage.read(template_path))
        except Exception as exc:
            raise PdfProcessingError(f"Could not read NDA template: {exc}") from exc

        values = {name: reader.reader_name or "" for name in READER_NAME_FIELDS}
        values.update({name: format_uk_date(today or date.today()) for name in CURRENT_DATE_FIELDS})
        values[PIN_FIELD] = reader.reader_pin

        filled = 0
        for field_name, value in values.items():
            widgets = [
                widget for widget in pdf_forms.find_widgets(document, field_name)
                if pdf_forms.field_type(widget) == "/Tx"
            ]
            if not widgets:
                logger.warning("[NDA] Field %s not found in template %s", field_name, version.version_number)
                continue
            for widget in widgets:
                pdf_forms.set_text_value(document, widget, value)
            filled += 1

        output_path = self.storage.generated_path(reader.reader_pin)
        self.storage.write(output_path, pdf_forms.save_document(document))
        logger.info("[NDA] Generated NDA for %s (%d fields, version %s)",
                    reader.reader_pin, filled, version.version_number)
        return output_path
