"""
Conversion API routes.

- POST /api/convert: upload a PDF and convert it (quota-gated for users)
- GET  /api/download/{filename}: download a converted file (owner only)
- GET  /api/account/conversions: list the caller's conversions
"""
from pathlib import Path
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.responses import FileResponse
from pydantic import BaseModel

from convertly.api.dependencies import get_conversion_service
from convertly.core.auth import get_optional_user_id, require_user_id
from convertly.core.errors import ValidationError
from convertly.features.conversions.service import ConversionService, parse_format


router = APIRouter(prefix="/api", tags=["conversions"])


class ConvertResponse(BaseModel):
    success: bool
    message: str
    filename: str
    download_url: str
    requires_login: bool


class ConversionItem(BaseModel):
    filename: str
    original_name: str
    format: str
    download_url: str
    created_at: Optional[str] = None


@router.post("/convert", response_model=ConvertResponse)
async def convert(
    file: Optional[UploadFile] = File(None),
    format: Optional[str] = Form(None),
    user_id: Optional[int] = Depends(get_optional_user_id),
    service: ConversionService = Depends(get_conversion_service),
):
    """
    Convert an uploaded PDF to Word, Excel or PowerPoint.

    Anonymous callers may convert; the result can only be downloaded after
    logging in (``requires_login``). Logged-in free users are limited per day.
    """
    if file is None or not file.filename:
        raise ValidationError("No file uploaded")
    target = parse_format(format)

    try:
        result = await service.convert_upload(
            original_name=file.filename,
            content_type=file.content_type,
            reader=file.read,
            target_format=target,
            user_id=user_id,
        )
    finally:
        await file.close()

    message = "File converted successfully"
    if result.requires_login:
        message += ". Please log in to download your file."
    return ConvertResponse(
        success=True,
        message=message,
        filename=result.record.filename,
        download_url=result.record.download_url,
        requires_login=result.requires_login,
    )


@router.get("/download/{filename}")
async def download(
    filename: str,
    user_id: Optional[int] = Depends(get_optional_user_id),
    service: ConversionService = Depends(get_conversion_service),
):
    record, path = service.authorize_download(filename, user_id)
    download_name = f"{Path(record.original_name).stem or 'converted'}.{record.format.extension}"
    return FileResponse(path, filename=download_name)


@router.get("/account/conversions", response_model=List[ConversionItem])
async def list_conversions(
    user_id: int = Depends(require_user_id),
    service: ConversionService = Depends(get_conversion_service),
):
    return [
        ConversionItem(
            filename=record.filename,
            original_name=record.original_name,
            format=record.format.value,
            download_url=record.download_url,
            created_at=record.created_at.isoformat() if record.created_at else None,
        )
        for record in service.list_for_user(user_id)
    ]
