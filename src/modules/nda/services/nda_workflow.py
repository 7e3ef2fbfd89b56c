"""
NDA signing wizard.

    1 review -> 2 sign -> 3 preview/confirm -> 4 signed

Steps 2 and 3 never raise to the caller: every failure becomes a redirect to
the step that failed with a short error tag, so the reader can resume from
step 2 at any time. The preview cache bridges steps 3 and 4.
"""

import asyncio
import base64
import hashlib
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Optional, Tuple
from urllib.parse import urlencode

from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from core.exceptions import (
    NdaArtifactNotFoundError,
    NdaVersionNotFoundError,
    PdfProcessingError,
    PreviewNotFoundError,
    SignedNdaNotFoundError,
    ValidationError,
)
from modules.nda.models.nda_version import NdaVersion
from modules.nda.repositories.nda_version_repository import NdaVersionRepository
from modules.nda.services import pdf_forms
from modules.nda.services.flattener import Flattener
from modules.nda.services.nda_generator import NdaGenerator
from modules.nda.services.preview_cache import PreviewCache
from modules.nda.services.signature_inserter import COUNTER, PRIMARY, SignatureInserter, is_image_data_url
from modules.nda.services.storage import NdaStorage
from modules.notifications.services.email_service import EmailService
from modules.notifications.services.templates import NdaSignedEmail
from modules.readers.models.reader import PortalAccessStatus, Reader
from modules.readers.repositories.activity_log_repository import ActivityLogRepository
from modules.readers.repositories.reader_repository import ReaderRepository
from modules.readers.services.pin import validate_pin

logger = logging.getLogger(__name__)

DASHBOARD_PATH = "/readersDashboard"

STEP_REVIEW = 1
STEP_SIGN = 2
STEP_CONFIRM = 3
STEP_COMPLETE = 4


class SignatureError(Exception):
    """The reader's signature could not be placed on the NDA"""


@dataclass
class WorkflowResult:
    reader_pin: str
    step: int
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def redirect_url(self) -> str:
        params = {"readerPin": self.reader_pin, "showModal": "nda", "step": self.step}
        if self.error:
            params["error"] = self.error
        return f"{DASHBOARD_PATH}?{urlencode(params)}"


class KeyedLock:
    """One asyncio.Lock per key, dropped once nobody holds or waits on it"""

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._holders: Dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str):
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._holders[key] = self._holders.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[key] -= 1
            if self._holders[key] == 0:
                del self._holders[key]
                del self._locks[key]

    def __contains__(self, key: str) -> bool:
        return key in self._locks


# Shared by every request of the process
signing_locks = KeyedLock()


def upload_to_data_url(content: bytes, content_type: Optional[str]) -> Optional[str]:
    if not content:
        return None
    mime = content_type if content_type and content_type.startswith("image/") else "image/png"
    return f"data:{mime};base64,{base64.b64encode(content).decode('ascii')}"


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


class NdaWorkflow:

    def __init__(
        self,
        db: Session,
        cache: PreviewCache,
        email_service: EmailService,
        storage: Optional[NdaStorage] = None,
        locks: Optional[KeyedLock] = None,
    ):
        self.db = db
        self.cache = cache
        self.email_service = email_service
        self.storage = storage or NdaStorage()
        self.locks = locks or signing_locks
        self.readers = ReaderRepository(db)
        self.versions = NdaVersionRepository(db)
        self.activity = ActivityLogRepository(db)
        self.flattener = Flattener()

    @staticmethod
    def _require_pin(reader_pin: Optional[str]) -> str:
        if not reader_pin or not reader_pin.strip():
            raise ValidationError("Reader PIN required", field="readerPin")
        return reader_pin.strip()

    def _current_version(self) -> NdaVersion:
        version = self.versions.find_current()
        if version is None:
            raise NdaVersionNotFoundError()
        return version

    # ------------------------------------------------------------------
    # Step 1 -> 2
    # ------------------------------------------------------------------
    def continue_to_sign(self, reader_pin: Optional[str]) -> WorkflowResult:
        pin = self._require_pin(reader_pin)
        logger.info("[NDA] Step 1 -> 2: reader %s continuing to sign", pin)
        return WorkflowResult(pin, STEP_SIGN)

    # ------------------------------------------------------------------
    # Step 2 -> 3
    # ------------------------------------------------------------------
    async def generate_preview(
        self,
        reader_pin: Optional[str],
        signature_data: Optional[str] = None,
        upload_content: Optional[bytes] = None,
        upload_content_type: Optional[str] = None,
        acknowledgment_confirmed: bool = False,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> WorkflowResult:
        pin = self._require_pin(reader_pin)

        if not acknowledgment_confirmed:
            logger.info("[NDA] Preview rejected for %s: acknowledgment not confirmed", pin)
            return WorkflowResult(pin, STEP_SIGN, "acknowledgment")

        signature = upload_to_data_url(upload_content, upload_content_type) if upload_content else None
        signature = signature or (signature_data or "").strip() or None
        # Client payloads are non-empty images only, never server paths
        if not is_image_data_url(signature):
            logger.info("[NDA] Preview rejected for %s: no signature provided", pin)
            return WorkflowResult(pin, STEP_SIGN, "signature")

        try:
            async with self.locks.hold(pin):
                # Database and PDF work both block, so they run off the event loop
                result = await run_in_threadpool(self._preview_locked, pin, signature, ip_address, user_agent)
        except (SignatureError, PdfProcessingError, NdaArtifactNotFoundError, NdaVersionNotFoundError) as exc:
            await run_in_threadpool(self.db.rollback)
            logger.warning("[NDA] Preview failed for %s: %s", pin, exc)
            return WorkflowResult(pin, STEP_SIGN, "pdf")
        except Exception:
            await run_in_threadpool(self.db.rollback)
            logger.exception("[NDA] Unexpected error generating preview for %s", pin)
            return WorkflowResult(pin, STEP_SIGN, "server")
        return result

    def _preview_locked(self, pin: str, signature: str, ip_address: Optional[str],
                        user_agent: Optional[str]) -> WorkflowResult:
        reader = self.readers.find_by_pin(pin)
        if reader is None:
            logger.warning("[NDA] Preview requested for unknown reader %s", pin)
            return WorkflowResult(pin, STEP_SIGN, "notfound")

        version = self._current_version()
        preview_path = self._build_preview(reader, version, signature)

        self.cache.put(pin, preview_path, signature, version_id=version.id, reader={
            "reader_pin": reader.reader_pin,
            "reader_name": reader.reader_name,
            "reader_type": reader.reader_type.value,
            "email": reader.email,
        })
        self.activity.add(
            pin, "ndaPreviewGenerated",
            f"NDA preview generated with reader signature (version {version.version_number})",
            ip_address=ip_address, user_agent=user_agent, performed_by=pin,
        )
        logger.info("[NDA] Step 2 -> 3: preview cached for %s", pin)
        return WorkflowResult(pin, STEP_CONFIRM)

    def _ensure_generated(self, reader: Reader, version: NdaVersion) -> str:
        """The reader's unsigned NDA, regenerated unless it came from `version`"""
        path = self.storage.generated_path(reader.reader_pin)
        if self.storage.exists(path) and reader.nda_generated_version_id == version.id:
            return path

        if self.storage.exists(path):
            logger.info("[NDA] NDA for %s predates version %s, regenerating",
                        reader.reader_pin, version.version_number)
        else:
            logger.info("[NDA] No generated NDA for %s, generating one now", reader.reader_pin)
        path = NdaGenerator(self.storage).generate(reader, version)
        reader.nda_generated_version_id = version.id
        self.readers.save(reader)
        return path

    def _build_preview(self, reader: Reader, version: NdaVersion, signature: str) -> str:
        pin = reader.reader_pin
        source_path = self._ensure_generated(reader, version)

        try:
            document = pdf_forms.load_document(self.storage.read(source_path))
        except Exception as exc:
            raise PdfProcessingError(f"Could not read NDA for {pin}: {exc}") from exc

        counter_source = self.storage.counter_signature_path() if version.counter_signature_required else None
        inserter = SignatureInserter(version.reader_signature_field, version.counter_signature_field)
        result = inserter.insert(document, signature, counter_source)

        if not result.succeeded(PRIMARY):
            raise SignatureError(result.errors.get(PRIMARY, "Reader signature not inserted"))
        if version.counter_signature_required and not result.succeeded(COUNTER):
            raise SignatureError(result.errors.get(COUNTER, "Counter-signature not inserted"))

        # Keep the raw image the reader drew or uploaded
        self.storage.write(self.storage.signature_image_path(pin), base64.b64decode(signature.split(",", 1)[1]))

        preview_path = self.storage.preview_path(pin)
        self.storage.write(preview_path, pdf_forms.save_document(result.document))
        return preview_path

    # ------------------------------------------------------------------
    # Step 3 (preview iframe)
    # ------------------------------------------------------------------
    def serve_preview(self, reader_pin: Optional[str]) -> bytes:
        pin = self._require_pin(reader_pin)
        entry = self.cache.get(pin)
        if entry is None or not self.storage.exists(entry.pdf_path):
            logger.info("[NDA] Preview not found for %s", pin)
            raise PreviewNotFoundError(pin)
        return self.storage.read(entry.pdf_path)

    # ------------------------------------------------------------------
    # Step 3 -> 4
    # ------------------------------------------------------------------
    async def sign(
        self,
        reader_pin: Optional[str],
        confirm_from_preview: bool,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> WorkflowResult:
        pin = self._require_pin(reader_pin)

        if not confirm_from_preview:
            return WorkflowResult(pin, STEP_CONFIRM, "confirm")

        try:
            async with self.locks.hold(pin):
                result, confirmation = await run_in_threadpool(self._sign_locked, pin, ip_address, user_agent)
        except Exception:
            await run_in_threadpool(self.db.rollback)
            logger.exception("[NDA] Unexpected error signing NDA for %s", pin)
            return WorkflowResult(pin, STEP_CONFIRM, "server")

        if confirmation is not None:
            await self._send_confirmation(pin, *confirmation)
        return result

    def _sign_locked(self, pin: str, ip_address: Optional[str],
                     user_agent: Optional[str]) -> Tuple[WorkflowResult, Optional[Tuple[str, NdaSignedEmail]]]:
        entry = self.cache.get(pin)
        if entry is None or not self.storage.exists(entry.pdf_path):
            logger.info("[NDA] No live preview for %s, back to step 2", pin)
            return WorkflowResult(pin, STEP_SIGN, "expired"), None

        reader = self.readers.find_by_pin(pin)
        if reader is None:
            return WorkflowResult(pin, STEP_SIGN, "notfound"), None

        try:
            signed_path, digest = self._finalize(pin, entry.pdf_path)
        except PdfProcessingError as exc:
            logger.error("[NDA] Flatten failed for %s: %s", pin, exc)
            return WorkflowResult(pin, STEP_CONFIRM, "flatten"), None

        now = datetime.utcnow()
        reader.nda_signed_at = now
        reader.nda_pdf_path = signed_path
        reader.nda_hash = digest
        reader.nda_hash_timestamp = now
        # The version the previewed document was built from
        reader.nda_version_id = entry.version_id
        reader.nda_signed = True
        if reader.portal_access_status == PortalAccessStatus.PENDING:
            reader.portal_access_status = PortalAccessStatus.ACTIVE

        # Signature and audit entry are committed together
        self.activity.add(
            pin, "ndaSigned", f"NDA signed (sha256 {digest[:12]}...)",
            ip_address=ip_address, user_agent=user_agent, performed_by=pin, commit=False,
        )
        self.readers.save(reader)
        self.cache.pop(pin)

        logger.info("[NDA] Step 3 -> 4: NDA signed for %s", pin)
        confirmation = (reader.email, NdaSignedEmail(reader.reader_name, pin, now))
        return WorkflowResult(pin, STEP_COMPLETE), confirmation

    def _finalize(self, reader_pin: str, preview_path: str):
        try:
            document = pdf_forms.load_document(self.storage.read(preview_path))
            self.flattener.flatten(document)
            data = pdf_forms.save_document(document)
        except Exception as exc:
            raise PdfProcessingError(f"Could not flatten NDA: {exc}") from exc

        signed_path = self.storage.write(self.storage.signed_path(reader_pin), data)
        return signed_path, sha256_hex(data)

    async def _send_confirmation(self, reader_pin: str, email: str, template: NdaSignedEmail) -> None:
        sent = await self.email_service.send_email(email, template.subject, template.html)
        if not sent:
            logger.warning("[NDA] Confirmation email not sent to %s", reader_pin)

    # ------------------------------------------------------------------
    # Step 4 (view / download)
    # ------------------------------------------------------------------
    def signed_document(self, reader_pin: Optional[str]) -> str:
        pin = self._require_pin(reader_pin)
        reader = self.readers.find_by_pin(pin)
        if reader is None or not reader.nda_pdf_path:
            raise SignedNdaNotFoundError(pin)
        if not self.storage.exists(reader.nda_pdf_path):
            raise NdaArtifactNotFoundError(reader.nda_pdf_path)
        return reader.nda_pdf_path

    # ------------------------------------------------------------------
    # Stand-alone generation
    # ------------------------------------------------------------------
    async def generate_nda(self, reader: Reader) -> str:
        validate_pin(reader.reader_pin)
        return await run_in_threadpool(self._generate_nda, reader)

    def _generate_nda(self, reader: Reader) -> str:
        version = self._current_version()
        path = NdaGenerator(self.storage).generate(reader, version)
        reader.nda_generated_version_id = version.id
        self.readers.save(reader)
        self.activity.add(reader.reader_pin, "ndaGenerated", f"NDA generated from version {version.version_number}",
                          performed_by=reader.reader_pin)
        return path
