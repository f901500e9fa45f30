from __future__ import annotations

from fastapi import APIRouter, HTTPException, Response, status

from ...domain.chat_models import ErrorResponse
from ...domain.export_models import ExportRequest
from ...services.docx_export import DOCX_MEDIA_TYPE, ExportError, export_filename, render_docx
from ...services.telemetry_sink import record_event


router = APIRouter(tags=["export"])


@router.post(
    "/export-docx",
    response_class=Response,
    responses={200: {"content": {DOCX_MEDIA_TYPE: {}}}, 500: {"model": ErrorResponse}},
)
def export_docx(req: ExportRequest) -> Response:
    try:
        data = render_docx(req.content)
    except ExportError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc
    filename = export_filename(req.title)
    record_event("docx_exported", filename=filename, size=len(data))
    headers = {"Content-Disposition": f'attachment; filename="{filename}"'}
    return Response(content=data, media_type=DOCX_MEDIA_TYPE, headers=headers)
