import hashlib
import os
import re
import threading
from datetime import date, datetime

import pytest
from pypdf import PdfReader

from core.exceptions import ValidationError
from modules.nda.models.nda_version import NdaVersion
from modules.nda.repositories.nda_version_repository import NdaVersionRepository
from modules.nda.services.nda_workflow import KeyedLock, NdaWorkflow, WorkflowResult
from modules.readers.models.reader import PortalAccessStatus, Reader, ReaderType
from modules.readers.repositories.activity_log_repository import ActivityLogRepository
from modules.readers.repositories.reader_repository import ReaderRepository
from conftest import READER_PIN, TEMPLATE_NAME, build_nda_template, signature_png, to_data_url


@pytest.fixture
def workflow(db, preview_cache, fake_email, storage):
    return NdaWorkflow(db, preview_cache, fake_email, storage=storage, locks=KeyedLock())


def test_redirect_url_carries_step_and_error():
    url = WorkflowResult(READER_PIN, 2, "acknowledgment").redirect_url
    assert url == f"/readersDashboard?readerPin={READER_PIN}&showModal=nda&step=2&error=acknowledgment"
    assert "error" not in WorkflowResult(READER_PIN, 3).redirect_url


def test_continue_to_sign_requires_pin(workflow):
    assert workflow.continue_to_sign(READER_PIN).step == 2
    with pytest.raises(ValidationError):
        workflow.continue_to_sign("  ")


@pytest.mark.asyncio
async def test_preview_requires_acknowledgment_even_with_signature(workflow, reader, nda_version, preview_cache):
    result = await workflow.generate_preview(READER_PIN, signature_data=to_data_url(signature_png()),
                                             acknowledgment_confirmed=False)
    assert (result.step, result.error) == (2, "acknowledgment")
    assert READER_PIN not in preview_cache


@pytest.mark.asyncio
async def test_preview_requires_image_signature(workflow, reader, nda_version, storage):
    result = await workflow.generate_preview(READER_PIN, signature_data=storage.counter_signature_path(),
                                             acknowledgment_confirmed=True)
    assert (result.step, result.error) == (2, "signature")


@pytest.mark.asyncio
async def test_preview_for_unknown_reader(workflow, nda_version):
    result = await workflow.generate_preview("RDR-ZZ999999", signature_data=to_data_url(signature_png()),
                                             acknowledgment_confirmed=True)
    assert (result.step, result.error) == (2, "notfound")


@pytest.mark.asyncio
async def test_preview_accepts_uploaded_image(workflow, reader, nda_version, preview_cache, storage):
    result = await workflow.generate_preview(READER_PIN, upload_content=signature_png(),
                                             upload_content_type="image/png", acknowledgment_confirmed=True)
    assert result.step == 3
    assert preview_cache.get(READER_PIN).pdf_path == storage.preview_path(READER_PIN)
    assert os.path.exists(storage.signature_image_path(READER_PIN))


@pytest.mark.asyncio
async def test_missing_counter_signature_fails_preview(workflow, reader, nda_version, storage):
    os.remove(storage.counter_signature_path())
    result = await workflow.generate_preview(READER_PIN, signature_data=to_data_url(signature_png()),
                                             acknowledgment_confirmed=True)
    assert (result.step, result.error) == (2, "pdf")


@pytest.mark.asyncio
async def test_counter_signature_optional_per_version(workflow, db, reader, storage):
    NdaVersionRepository(db).publish(NdaVersion(
        version_number="2.0",
        nda_template_path=TEMPLATE_NAME,
        effective_date=date(2026, 1, 1),
        counter_signature_required=False,
        created_by="test",
    ))
    os.remove(storage.counter_signature_path())

    result = await workflow.generate_preview(READER_PIN, signature_data=to_data_url(signature_png()),
                                             acknowledgment_confirmed=True)
    assert result.step == 3


@pytest.mark.asyncio
async def test_sign_without_confirmation_changes_nothing(workflow, db, reader, nda_version, preview_cache):
    await workflow.generate_preview(READER_PIN, signature_data=to_data_url(signature_png()),
                                    acknowledgment_confirmed=True)

    result = await workflow.sign(READER_PIN, confirm_from_preview=False)

    assert (result.step, result.error) == (3, "confirm")
    db.refresh(reader)
    assert reader.nda_signed is False
    assert READER_PIN in preview_cache


@pytest.mark.asyncio
async def test_sign_without_live_preview_goes_back_to_step_two(workflow, db, reader, nda_version, clock):
    await workflow.generate_preview(READER_PIN, signature_data=to_data_url(signature_png()),
                                    acknowledgment_confirmed=True)
    clock.advance(11 * 60)

    result = await workflow.sign(READER_PIN, confirm_from_preview=True)

    assert (result.step, result.error) == (2, "expired")
    db.refresh(reader)
    assert reader.nda_signed is False


@pytest.mark.asyncio
async def test_sign_happy_path(workflow, db, reader, nda_version, preview_cache, fake_email, storage):
    preview = await workflow.generate_preview(READER_PIN, signature_data=to_data_url(signature_png()),
                                              acknowledgment_confirmed=True, ip_address="10.0.0.1")
    assert preview.ok

    result = await workflow.sign(READER_PIN, confirm_from_preview=True, ip_address="10.0.0.1")

    assert result.step == 4
    db.refresh(reader)
    assert reader.nda_signed is True
    assert reader.nda_signed_at is not None
    assert reader.nda_pdf_path == storage.signed_path(READER_PIN)
    assert re.fullmatch(r"[0-9a-f]{64}", reader.nda_hash)
    with open(reader.nda_pdf_path, "rb") as f:
        assert hashlib.sha256(f.read()).hexdigest() == reader.nda_hash
    assert reader.nda_version_id == nda_version.id
    assert reader.portal_access_status == PortalAccessStatus.ACTIVE
    assert READER_PIN not in preview_cache

    activity = [e.activity_type for e in ActivityLogRepository(db).find_by_reader(READER_PIN)]
    assert "ndaPreviewGenerated" in activity
    assert "ndaSigned" in activity
    assert fake_email.sent and fake_email.sent[0]["to"] == reader.email

    assert workflow.signed_document(READER_PIN) == reader.nda_pdf_path


@pytest.mark.asyncio
async def test_generate_nda_logs_activity(workflow, db, reader, nda_version, storage):
    path = await workflow.generate_nda(reader)
    assert path == storage.generated_path(READER_PIN)
    assert ActivityLogRepository(db).find_by_reader(READER_PIN, "ndaGenerated")


@pytest.mark.asyncio
async def test_keyed_lock_is_dropped_after_use():
    locks = KeyedLock()
    async with locks.hold(READER_PIN):
        assert READER_PIN in locks
    assert READER_PIN not in locks


def test_reader_cannot_be_marked_signed_without_artifacts():
    reader = Reader(reader_pin=READER_PIN, reader_name="Alice Brown", email="a@example.com",
                    reader_type=ReaderType.FIRST_READER, created_by="test")
    with pytest.raises(ValueError):
        reader.nda_signed = True

    reader.nda_signed_at = datetime.utcnow()
    reader.nda_pdf_path = "/tmp/signed.pdf"
    reader.nda_hash = "0" * 64
    reader.nda_signed = True
    assert reader.nda_signed is True


@pytest.mark.asyncio
async def test_empty_drawn_signature_is_a_signature_error(workflow, reader, nda_version, preview_cache):
    for empty in ("data:image/png;base64,", "data:image/png;base64,   "):
        result = await workflow.generate_preview(READER_PIN, signature_data=empty, acknowledgment_confirmed=True)
        assert (result.step, result.error) == (2, "signature")
    assert READER_PIN not in preview_cache


def publish_version(db, storage, number, reader_field="ReadersSignature", counter_field="LizsSignature"):
    template = f"TemplateReadersNDA_v{number}.pdf"
    storage.write(storage.template_path(template), build_nda_template(button_fields=(reader_field, counter_field)))
    return NdaVersionRepository(db).publish(NdaVersion(
        version_number=number,
        nda_template_path=template,
        effective_date=date(2026, 1, 1),
        reader_signature_field=reader_field,
        counter_signature_field=counter_field,
        created_by="test",
    ))


@pytest.mark.asyncio
async def test_preview_regenerates_nda_from_newer_version(workflow, db, reader, nda_version, preview_cache, storage):
    await workflow.generate_nda(reader)
    assert reader.nda_generated_version_id == nda_version.id

    v2 = publish_version(db, storage, "2.0", reader_field="ReaderSig", counter_field="AdminSig")
    result = await workflow.generate_preview(READER_PIN, signature_data=to_data_url(signature_png()),
                                             acknowledgment_confirmed=True)

    assert result.step == 3
    assert preview_cache.get(READER_PIN).version_id == v2.id
    db.refresh(reader)
    assert reader.nda_generated_version_id == v2.id
    fields = PdfReader(storage.preview_path(READER_PIN)).get_fields()
    assert "ReaderSig" in fields
    assert "ReadersSignature" not in fields


@pytest.mark.asyncio
async def test_sign_records_version_of_the_preview(workflow, db, reader, nda_version, storage):
    await workflow.generate_preview(READER_PIN, signature_data=to_data_url(signature_png()),
                                    acknowledgment_confirmed=True)
    publish_version(db, storage, "3.0")

    result = await workflow.sign(READER_PIN, confirm_from_preview=True)

    assert result.step == 4
    db.refresh(reader)
    assert reader.nda_version_id == nda_version.id


@pytest.mark.asyncio
async def test_failed_audit_write_leaves_reader_unsigned(workflow, db, reader, nda_version, preview_cache,
                                                          fake_email, monkeypatch):
    await workflow.generate_preview(READER_PIN, signature_data=to_data_url(signature_png()),
                                    acknowledgment_confirmed=True)
    original_add = ActivityLogRepository.add

    def failing_add(self, reader_pin, activity_type, *args, **kwargs):
        if activity_type == "ndaSigned":
            raise RuntimeError("audit store unavailable")
        return original_add(self, reader_pin, activity_type, *args, **kwargs)

    monkeypatch.setattr(ActivityLogRepository, "add", failing_add)

    result = await workflow.sign(READER_PIN, confirm_from_preview=True)

    assert (result.step, result.error) == (3, "server")
    db.refresh(reader)
    assert reader.nda_signed is False
    assert reader.nda_hash is None
    assert READER_PIN in preview_cache
    assert not fake_email.sent


@pytest.mark.asyncio
async def test_database_work_runs_off_the_event_loop(workflow, reader, nda_version, monkeypatch):
    loop_thread = threading.current_thread()
    threads = []
    original_find = ReaderRepository.find_by_pin
    original_save = ReaderRepository.save

    def tracking_find(self, pin):
        threads.append(threading.current_thread())
        return original_find(self, pin)

    def tracking_save(self, r):
        threads.append(threading.current_thread())
        return original_save(self, r)

    monkeypatch.setattr(ReaderRepository, "find_by_pin", tracking_find)
    monkeypatch.setattr(ReaderRepository, "save", tracking_save)

    await workflow.generate_preview(READER_PIN, signature_data=to_data_url(signature_png()),
                                    acknowledgment_confirmed=True)
    result = await workflow.sign(READER_PIN, confirm_from_preview=True)

    assert result.step == 4
    assert threads
    assert all(thread is not loop_thread for thread in threads)
