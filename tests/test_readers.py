from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from core.exceptions import InvalidPinError, ValidationError
from modules.readers.models.assignment import Assignment, AssignmentStatus, PaymentStatus
from modules.readers.services.assignment_service import AssignmentService
from modules.readers.services.pin import generate_pin, initials, is_valid_pin, validate_pin
from conftest import READER_PIN


def create_assignment(db, report_pdf_path=None, assigned_hours_ago=0, **kwargs):
    assignment = AssignmentService.create(
        db, READER_PIN, "case.manager@qolae.com",
        internal_case_pin="CASE-0042",
        internal_case_description="Internal only",
        report_pdf_path=report_pdf_path,
        **kwargs,
    )
    if assigned_hours_ago:
        assignment.report_assigned_at = datetime.utcnow() - timedelta(hours=assigned_hours_ago)
        db.commit()
        db.refresh(assignment)
    return assignment


# ----------------------------------------------------------------------
# PINs
# ----------------------------------------------------------------------
def test_pin_format():
    assert is_valid_pin("RDR-AB123456")
    assert not is_valid_pin("RDR-ab123456")
    assert not is_valid_pin("RDR-AB12345")
    assert not is_valid_pin("")
    assert validate_pin(" RDR-AB123456 ") == "RDR-AB123456"
    with pytest.raises(InvalidPinError):
        validate_pin("../../etc/passwd")


def test_initials():
    assert initials("Alice Mary Brown") == "AB"
    assert initials("Zoë Émile") == "ZE"
    assert initials("Cher") == "CH"
    assert initials("J") == "JX"
    with pytest.raises(ValidationError):
        initials("123")


def test_generate_pin_skips_taken_pins():
    seen = []

    def exists(pin):
        seen.append(pin)
        # First candidate is taken
        return len(seen) == 1

    pin = generate_pin("Alice Brown", exists)
    assert is_valid_pin(pin)
    assert pin.startswith("RDR-AB")
    assert pin == seen[1]


def test_generate_pin_gives_up():
    with pytest.raises(ValidationError):
        generate_pin("Alice Brown", lambda pin: True)


# ----------------------------------------------------------------------
# Assignments
# ----------------------------------------------------------------------
def test_deadline_defaults_to_24_hours(db, reader):
    assignment = create_assignment(db)
    assert assignment.deadline - assignment.report_assigned_at == timedelta(hours=24)
    assert assignment.payment_amount == Decimal("50.00")


def test_explicit_deadline_is_kept(db, reader):
    deadline = datetime(2030, 1, 1, 12, 0)
    assignment = create_assignment(db, deadline=deadline)
    assert assignment.deadline == deadline


def test_assignment_numbers_increase(db, reader):
    first = create_assignment(db)
    second = create_assignment(db)
    assert second.assignment_number == first.assignment_number + 1


def test_reader_never_sees_internal_case(client, db, reader, reader_headers):
    assignment = create_assignment(db)

    listed = client.get("/api/readers/assignments", headers=reader_headers)
    single = client.get(f"/api/readers/assignments/{assignment.id}", headers=reader_headers)
    dashboard = client.get("/readersDashboard", headers=reader_headers)

    for body in (listed.json()[0], single.json(), dashboard.json()["assignments"][0]):
        assert "internal_case_pin" not in body
        assert "internal_case_description" not in body
    assert "CASE-0042" not in dashboard.text


def test_dashboard_echoes_modal_state(client, reader, reader_headers, nda_version):
    response = client.get("/readersDashboard",
                          params={"readerPin": READER_PIN, "showModal": "nda", "step": 2, "error": "signature"},
                          headers=reader_headers)
    body = response.json()
    assert body["modal"] == {"show_modal": "nda", "step": 2, "error": "signature"}
    assert body["nda"] == {"signed": False, "signed_at": None, "version_number": "1.0"}


def test_report_is_served_inline(client, db, reader, reader_headers, tmp_path):
    report = tmp_path / "report.pdf"
    report.write_bytes(b"%PDF-1.4 redacted")
    assignment = create_assignment(db, report_pdf_path=str(report))

    response = client.get(f"/api/readers/assignments/{assignment.id}/report", headers=reader_headers)

    assert response.status_code == 200
    assert response.headers["content-disposition"].startswith("inline")
    assert response.content == b"%PDF-1.4 redacted"


def test_save_then_submit_corrections(client, db, reader, reader_headers):
    assignment = create_assignment(db, assigned_hours_ago=6)

    saved = client.post("/api/readers/save-corrections", headers=reader_headers,
                        json={"assignment_id": assignment.id, "corrections_content": "Page 3: typo"})
    assert saved.status_code == 200
    assert saved.json()["assignment"]["assignment_status"] == "in_progress"

    submitted = client.post("/api/readers/submit-corrections", headers=reader_headers,
                            json={"assignment_id": assignment.id, "corrections_notes": "Done"})
    assert submitted.status_code == 200
    assert submitted.json()["assignment"]["corrections_submitted"] is True

    db.expire_all()
    stored = db.get(Assignment, assignment.id)
    assert stored.assignment_status == AssignmentStatus.COMPLETED
    assert Decimal("5.9") < stored.turnaround_hours < Decimal("6.1")
    assert reader.total_assignments_completed == 1
    assert Decimal("5.9") < reader.average_turnaround_hours < Decimal("6.1")


def test_submitted_assignment_is_locked(client, db, reader, reader_headers):
    assignment = create_assignment(db)
    client.post("/api/readers/save-corrections", headers=reader_headers,
                json={"assignment_id": assignment.id, "corrections_content": "Fix"})
    client.post("/api/readers/submit-corrections", headers=reader_headers, json={"assignment_id": assignment.id})

    again = client.post("/api/readers/save-corrections", headers=reader_headers,
                        json={"assignment_id": assignment.id, "corrections_content": "Late edit"})
    assert again.status_code == 409
    resubmit = client.post("/api/readers/submit-corrections", headers=reader_headers,
                           json={"assignment_id": assignment.id})
    assert resubmit.status_code == 409

    closed = client.get(f"/api/readers/assignments/{assignment.id}", headers=reader_headers)
    assert closed.status_code == 403


def test_empty_corrections_cannot_be_submitted(client, db, reader, reader_headers):
    assignment = create_assignment(db)
    response = client.post("/api/readers/submit-corrections", headers=reader_headers,
                           json={"assignment_id": assignment.id})
    assert response.status_code == 400


def test_other_readers_assignment_is_not_found(client, db, reader, reader_headers):
    response = client.get("/api/readers/assignments/999", headers=reader_headers)
    assert response.status_code == 404


def test_average_turnaround_over_two_assignments(db, reader):
    for hours in (4, 8):
        assignment = create_assignment(db, assigned_hours_ago=hours)
        AssignmentService.save_corrections(db, reader, assignment.id, "notes")
        AssignmentService.submit_corrections(db, reader, assignment.id)

    db.refresh(reader)
    assert reader.total_assignments_completed == 2
    assert Decimal("5.9") < reader.average_turnaround_hours < Decimal("6.1")


def test_payment_status_lists_completed_work(client, db, reader, reader_headers):
    assignment = create_assignment(db, assigned_hours_ago=2)
    AssignmentService.save_corrections(db, reader, assignment.id, "notes")
    AssignmentService.submit_corrections(db, reader, assignment.id)
    create_assignment(db)

    body = client.get("/api/readers/payment-status", headers=reader_headers).json()

    assert body["reader_pin"] == READER_PIN
    assert body["total_earnings"] == 0
    assert len(body["payments"]) == 1
    assert body["payments"][0]["payment_status"] == PaymentStatus.PENDING.value


def test_generate_nda_endpoint(client, reader, reader_headers, nda_version, storage):
    response = client.post("/api/readers/generate-nda", headers=reader_headers)
    assert response.status_code == 200
    assert response.json()["pdf_path"] == storage.generated_path(READER_PIN)


def test_current_nda_version(client, reader, reader_headers, nda_version):
    body = client.get("/api/readers/nda/current", headers=reader_headers).json()
    assert body["version_number"] == "1.0"
    assert body["counter_signature_required"] is True
