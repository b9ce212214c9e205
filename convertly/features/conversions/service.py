"""
Conversion service.

Accepts an uploaded PDF, admits it through the quota gate (logged-in users
only), produces the "converted" file and records ownership for later
downloads. The conversion itself is a stand-in: the PDF bytes are copied
under the target extension.
"""
import asyncio
import hashlib
import logging
import shutil
from pathlib import Path
from typing import Awaitable, Callable, List, Optional, Tuple
from uuid import uuid4

from sqlalchemy import select, insert
from sqlalchemy.orm import sessionmaker

from convertly.core.database import guarded_session, get_session_factory, conversions
from convertly.core.errors import (
    AuthenticationRequiredError,
    NotFoundError,
    PayloadTooLargeError,
    PermissionError,
    QuotaExceededError,
    UnsupportedMediaTypeError,
    ValidationError,
)
from convertly.core.logging import log_event
from convertly.features.quota.gate import QuotaGate
from convertly.models.conversion import ConversionFormat, ConversionRecord, ConversionResult

logger = logging.getLogger(__name__)

PDF_MIME = "application/pdf"
CHUNK = 1024 * 1024
LOGIN_PAGE = "/simple-login.html"

Reader = Callable[[int], Awaitable[bytes]]


def parse_format(value: Optional[str]) -> ConversionFormat:
    try:
        return ConversionFormat((value or "").strip().lower())
    except ValueError:
        raise ValidationError("Invalid format. Must be word, excel, or powerpoint")


def _record_from_row(row) -> ConversionRecord:
    return ConversionRecord(
        filename=row.filename,
        original_name=row.original_name,
        format=ConversionFormat(row.format),
        download_url=row.download_url,
        user_id=row.user_id,
        created_at=row.created_at,
    )


class ConversionService:
    """Framework-agnostic orchestration of uploads, quota and downloads."""

    def __init__(
        self,
        gate: QuotaGate,
        session_factory: Optional[sessionmaker] = None,
        *,
        upload_dir: str,
        download_dir: str,
        max_upload_mb: int = 10,
    ) -> None:
        self._gate = gate
        self._session_factory = session_factory or get_session_factory()
        self._upload_dir = Path(upload_dir).resolve()
        self._download_dir = Path(download_dir).resolve()
        self._max_upload_mb = max_upload_mb

    def ensure_dirs(self) -> None:
        for d in (self._upload_dir, self._download_dir):
            d.mkdir(parents=True, exist_ok=True)

    async def convert_upload(
        self,
        *,
        original_name: str,
        content_type: Optional[str],
        reader: Reader,
        target_format: ConversionFormat,
        user_id: Optional[int],
    ) -> ConversionResult:
        """
        Convert an uploaded PDF.

        Logged-in users pass through the quota gate, which counts the
        conversion atomically; the slot is given back if anything fails
        before the record is written. Anonymous uploads skip the gate and
        are never counted.
        """
        if (content_type or "").lower() != PDF_MIME:
            raise UnsupportedMediaTypeError("Only PDF files are allowed")

        self.ensure_dirs()
        upload_path, checksum = await self._receive(reader)

        admitted = False
        output_path: Optional[Path] = None
        try:
            if user_id is not None:
                decision = self._gate.admit(user_id)
                if not decision.allowed:
                    raise QuotaExceededError(decision.reason or "daily limit reached")
                admitted = True

            converted_name = f"{uuid4().hex}.{target_format.extension}"
            output_path = self._download_dir / converted_name
            await asyncio.to_thread(shutil.copyfile, upload_path, output_path)

            record = self._insert_record(
                ConversionRecord(
                    filename=converted_name,
                    original_name=original_name,
                    format=target_format,
                    download_url=f"/downloads/{converted_name}",
                    user_id=user_id,
                )
            )
        except Exception:
            if output_path is not None:
                output_path.unlink(missing_ok=True)
            if admitted:
                self._gate.release(user_id)
            raise
        finally:
            upload_path.unlink(missing_ok=True)

        log_event(
            "info",
            "conversion.completed",
            user_id=user_id,
            event_type="conversion.completed",
            extra={
                "converted_filename": record.filename,
                "conversion_format": record.format.value,
                "checksum": checksum,
                "anonymous": user_id is None,
            },
        )
        return ConversionResult(record=record, requires_login=user_id is None)

    async def _receive(self, reader: Reader) -> Tuple[Path, str]:
        """Stream the upload to disk with a size cap; return (path, sha256)."""
        input_path = self._upload_dir / f"{uuid4().hex}.pdf"
        sha256 = hashlib.sha256()
        size_bytes = 0
        max_bytes = self._max_upload_mb * 1024 * 1024
        with input_path.open("wb") as f_out:
            while True:
                chunk = await reader(CHUNK)
                if not chunk:
                    break
                size_bytes += len(chunk)
                if size_bytes > max_bytes:
                    f_out.close()
                    input_path.unlink(missing_ok=True)
                    raise PayloadTooLargeError(f"File exceeds {self._max_upload_mb} MB limit")
                f_out.write(chunk)
                sha256.update(chunk)
        if size_bytes == 0:
            input_path.unlink(missing_ok=True)
            raise ValidationError("No file uploaded")
        return input_path, sha256.hexdigest()

    def _insert_record(self, record: ConversionRecord) -> ConversionRecord:
        with guarded_session(self._session_factory, "conversion store") as session:
            session.execute(
                insert(conversions).values(
                    user_id=record.user_id,
                    filename=record.filename,
                    original_name=record.original_name,
                    format=record.format.value,
                    download_url=record.download_url,
                )
            )
            row = session.execute(
                select(conversions).where(conversions.c.filename == record.filename)
            ).first()
        return _record_from_row(row)

    def get_conversion(self, filename: str) -> Optional[ConversionRecord]:
        with guarded_session(self._session_factory, "conversion store") as session:
            row = session.execute(
                select(conversions).where(conversions.c.filename == filename)
            ).first()
        return _record_from_row(row) if row else None

    def list_for_user(self, user_id: int) -> List[ConversionRecord]:
        with guarded_session(self._session_factory, "conversion store") as session:
            rows = session.execute(
                select(conversions)
                .where(conversions.c.user_id == user_id)
                .order_by(conversions.c.created_at.desc(), conversions.c.id.desc())
            ).all()
        return [_record_from_row(row) for row in rows]

    def authorize_download(self, filename: str, user_id: Optional[int]) -> Tuple[ConversionRecord, Path]:
        """
        Resolve a download for ``user_id``.

        Anonymous callers must log in. Files converted by a user are only
        served to that user; anonymous conversions are served to anyone
        logged in.
        """
        if user_id is None:
            raise AuthenticationRequiredError(
                "Authentication required for download", redirect_to=LOGIN_PAGE
            )
        if Path(filename).name != filename:
            raise NotFoundError("File not found")

        record = self.get_conversion(filename)
        if record is None:
            raise NotFoundError("File not found")
        if record.user_id is not None and record.user_id != user_id:
            raise PermissionError("Access denied - file belongs to another user")

        path = self._download_dir / filename
        if not path.is_file():
            raise NotFoundError("File not found on disk")
        return record, path
