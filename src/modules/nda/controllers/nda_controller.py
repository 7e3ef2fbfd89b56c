from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile
from fastapi.responses import FileResponse, RedirectResponse, Response

from modules.auth.controllers.auth_controller import client_ip
from modules.auth.dependencies import ensure_own_pin, get_compliant_reader
from modules.nda.dependencies import get_nda_workflow
from modules.nda.services.nda_workflow import NdaWorkflow, WorkflowResult
from modules.readers.models.reader import Reader

router = APIRouter(
    prefix="/api/nda",
    tags=["nda"]
)

TRUTHY = {"true", "1", "on", "yes"}


def is_truthy(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in TRUTHY


def to_redirect(result: WorkflowResult) -> RedirectResponse:
    return RedirectResponse(result.redirect_url, status_code=302)


@router.post("/continueToSign")
def continue_to_sign(
    readerPin: str = Form(""),
    reader: Reader = Depends(get_compliant_reader),
    workflow: NdaWorkflow = Depends(get_nda_workflow),
):
    """Step 1 -> 2, no side effects"""
    ensure_own_pin(reader, readerPin)
    return to_redirect(workflow.continue_to_sign(readerPin))


@router.post("/preview")
async def generate_preview(
    request: Request,
    readerPin: str = Form(""),
    signatureData: Optional[str] = Form(None),
    acknowledgmentConfirmed: Optional[str] = Form(None),
    signatureUpload: Optional[UploadFile] = File(None),
    reader: Reader = Depends(get_compliant_reader),
    workflow: NdaWorkflow = Depends(get_nda_workflow),
):
    """
    Step 2 -> 3: place the reader's drawn or uploaded signature (plus the
    counter-signature) on the NDA and cache the preview.
    """
    ensure_own_pin(reader, readerPin)

    upload_content, upload_type = None, None
    if signatureUpload is not None and signatureUpload.filename:
        upload_content = await signatureUpload.read()
        upload_type = signatureUpload.content_type

    result = await workflow.generate_preview(
        readerPin,
        signature_data=signatureData,
        upload_content=upload_content,
        upload_content_type=upload_type,
        acknowledgment_confirmed=is_truthy(acknowledgmentConfirmed),
        ip_address=client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    return to_redirect(result)


@router.get("/previewPdf")
def preview_pdf(
    readerPin: str = Query(""),
    reader: Reader = Depends(get_compliant_reader),
    workflow: NdaWorkflow = Depends(get_nda_workflow),
):
    ensure_own_pin(reader, readerPin)
    content = workflow.serve_preview(readerPin)
    return Response(
        content=content,
        media_type="application/pdf",
        headers={
            "Content-Disposition": f'inline; filename="NDA_Preview_{readerPin.strip()}.pdf"',
            "Cache-Control": "no-store",
        },
    )


@router.post("/sign")
async def sign_nda(
    request: Request,
    readerPin: str = Form(""),
    confirmFromPreview: Optional[str] = Form(None),
    reader: Reader = Depends(get_compliant_reader),
    workflow: NdaWorkflow = Depends(get_nda_workflow),
):
    """Step 3 -> 4: flatten the previewed NDA and record the signature"""
    ensure_own_pin(reader, readerPin)
    result = await workflow.sign(
        readerPin,
        confirm_from_preview=is_truthy(confirmFromPreview),
        ip_address=client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    return to_redirect(result)


def _signed_file(workflow: NdaWorkflow, reader_pin: str, disposition: str) -> FileResponse:
    path = workflow.signed_document(reader_pin)
    return FileResponse(
        path,
        media_type="application/pdf",
        filename=f"signedReadersNda{reader_pin.strip()}.pdf",
        content_disposition_type=disposition,
    )


@router.get("/view")
def view_signed_nda(
    readerPin: str = Query(""),
    reader: Reader = Depends(get_compliant_reader),
    workflow: NdaWorkflow = Depends(get_nda_workflow),
):
    ensure_own_pin(reader, readerPin)
    return _signed_file(workflow, readerPin, "inline")


@router.get("/download")
def download_signed_nda(
    readerPin: str = Query(""),
    reader: Reader = Depends(get_compliant_reader),
    workflow: NdaWorkflow = Depends(get_nda_workflow),
):
    ensure_own_pin(reader, readerPin)
    return _signed_file(workflow, readerPin, "attachment")
