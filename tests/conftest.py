import base64
import io
import os
import tempfile
from datetime import date

# Settings are read at import time; configure before importing the app
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET_KEY"] = "test-secret-key"
os.environ["CENTRAL_REPOSITORY_DIR"] = tempfile.mkdtemp(prefix="qolae-central-")
os.environ["SMTP_USER"] = ""
os.environ["SMTP_PASSWORD"] = ""
os.environ["COOKIE_SECURE"] = "false"
os.environ["ENVIRONMENT"] = "test"

import httpx
import pytest
from fastapi.testclient import TestClient
from PIL import Image, ImageDraw
from pypdf import PdfReader, PdfWriter
from pypdf.generic import (
    ArrayObject, DictionaryObject, FloatObject, NameObject, NumberObject, TextStringObject
)
from reportlab.lib.pagesizes import A4
from reportlab.pdfgen import canvas

import create_tables  # registers every model
from database import Base, SessionLocal, engine
from main import app
from modules.auth.services.auth_service import AuthService
from modules.auth.services.ssot_client import SsotClient, get_ssot_client
from modules.nda.dependencies import get_nda_storage, get_preview_cache
from modules.nda.models.nda_version import NdaVersion
from modules.nda.repositories.nda_version_repository import NdaVersionRepository
from modules.nda.services.preview_cache import PreviewCache
from modules.nda.services.storage import NdaStorage
from modules.notifications.services.email_service import get_email_service
from modules.readers.models.reader import PortalAccessStatus, Reader, ReaderType

READER_PIN = "RDR-AB123456"
TEMPLATE_NAME = "TemplateReadersNDA.pdf"
COUNTER_SIGNATURE = "lizs-signature-canvas.png"

TEXT_FIELDS = [f"ReadersName{i}" for i in range(1, 8)] + [f"CurrentDate{i}" for i in range(1, 5)] + ["PIN"]
PUSHBUTTON = 1 << 16


def build_nda_template(button_fields=("ReadersSignature", "LizsSignature"), text_fields=TEXT_FIELDS) -> bytes:
    """One page PDF with the text and signature button fields of the reader NDA"""
    buffer = io.BytesIO()
    c = canvas.Canvas(buffer, pagesize=A4)
    c.drawString(72, 800, "QOLAE Reader Non-Disclosure Agreement")
    c.drawString(72, 780, "This is a test template.")
    c.save()

    writer = PdfWriter(clone_from=PdfReader(io.BytesIO(buffer.getvalue())))
    page = writer.pages[0]
    annots = ArrayObject()

    def add_field(name, field_type, rect, flags=0):
        widget = DictionaryObject({
            NameObject("/Type"): NameObject("/Annot"),
            NameObject("/Subtype"): NameObject("/Widget"),
            NameObject("/FT"): NameObject(field_type),
            NameObject("/T"): TextStringObject(name),
            NameObject("/Rect"): ArrayObject([FloatObject(v) for v in rect]),
            NameObject("/F"): NumberObject(4),
            NameObject("/P"): page.indirect_reference,
        })
        if flags:
            widget[NameObject("/Ff")] = NumberObject(flags)
        annots.append(writer._add_object(widget))

    y = 740
    for name in text_fields:
        add_field(name, "/Tx", (72, y, 300, y + 16))
        y -= 22
    for i, name in enumerate(button_fields):
        add_field(name, "/Btn", (72 + i * 240, 120, 272 + i * 240, 180), PUSHBUTTON)

    page[NameObject("/Annots")] = annots
    writer._root_object[NameObject("/AcroForm")] = DictionaryObject({
        NameObject("/Fields"): ArrayObject(list(annots)),
        NameObject("/DA"): TextStringObject("/Helv 0 Tf 0 g"),
    })

    out = io.BytesIO()
    writer.write(out)
    return out.getvalue()


def signature_png(size=(240, 80), color=(10, 20, 120, 255)) -> bytes:
    image = Image.new("RGBA", size, (255, 255, 255, 0))
    draw = ImageDraw.Draw(image)
    draw.line([(10, 60), (80, 15), (150, 55), (230, 20)], fill=color, width=4)
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


def to_data_url(data: bytes, mime: str = "image/png") -> str:
    return f"data:{mime};base64,{base64.b64encode(data).decode('ascii')}"


def auth_headers(token):
    return {"Authorization": f"Bearer {token}"}


class FakeClock:
    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class FakeEmailService:
    def __init__(self, succeed=True):
        self.succeed = succeed
        self.sent = []

    async def send_email(self, to_email, subject, html_content, text_content=None):
        self.sent.append({"to": to_email, "subject": subject, "html": html_content})
        return self.succeed


async def no_sleep(_seconds):
    return None


@pytest.fixture(autouse=True)
def clean_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def storage(tmp_path):
    store = NdaStorage(root=str(tmp_path / "central-repository"), counter_signature_filename=COUNTER_SIGNATURE)
    store.ensure_layout()
    store.write(store.template_path(TEMPLATE_NAME), build_nda_template())
    store.write(store.counter_signature_path(), signature_png(color=(120, 10, 10, 255)))
    return store


@pytest.fixture
def nda_version(db):
    version = NdaVersion(
        version_number="1.0",
        nda_template_path=TEMPLATE_NAME,
        effective_date=date(2025, 10, 1),
        created_by="test",
    )
    return NdaVersionRepository(db).publish(version)


def make_reader(db, pin=READER_PIN, email="alice.brown@example.com", compliance=True,
                status=PortalAccessStatus.PENDING):
    reader = Reader(
        reader_pin=pin,
        reader_name="Alice Brown",
        email=email,
        reader_type=ReaderType.FIRST_READER,
        portal_access_status=status,
        compliance_submitted=compliance,
        created_by="test",
    )
    db.add(reader)
    db.commit()
    db.refresh(reader)
    return reader


@pytest.fixture
def reader(db):
    return make_reader(db)


@pytest.fixture
def reader_headers(reader):
    return auth_headers(AuthService.create_reader_token(reader))


@pytest.fixture
def admin_headers():
    token = AuthService.create_access_token({"sub": "admin@qolae.com", "email": "admin@qolae.com", "role": "admin"})
    return auth_headers(token)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def preview_cache(clock):
    return PreviewCache(ttl_seconds=600, clock=clock)


@pytest.fixture
def fake_email():
    return FakeEmailService()


@pytest.fixture
def ssot_handler():
    """Replace `.handler` in a test to script the SSOT answers"""
    class Router:
        def __init__(self):
            self.calls = []
            self.handler = lambda request: httpx.Response(200, json={"success": True})

        def __call__(self, request):
            self.calls.append(request)
            return self.handler(request)

    return Router()


@pytest.fixture
def client(storage, preview_cache, fake_email, ssot_handler):
    app.dependency_overrides[get_nda_storage] = lambda: storage
    app.dependency_overrides[get_preview_cache] = lambda: preview_cache
    app.dependency_overrides[get_email_service] = lambda: fake_email
    app.dependency_overrides[get_ssot_client] = lambda: SsotClient(
        base_url="https://ssot.test",
        transport=httpx.MockTransport(ssot_handler),
        sleep=no_sleep,
    )
    # No context manager: the lifespan (scheduler, seeding) does not run
    yield TestClient(app, raise_server_exceptions=False, follow_redirects=False)
    app.dependency_overrides.clear()
