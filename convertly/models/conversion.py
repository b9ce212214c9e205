"""
convertly/models/conversion.py

Conversion records and the fixed set of target formats.
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict


class ConversionFormat(str, Enum):
    WORD = "word"
    EXCEL = "excel"
    POWERPOINT = "powerpoint"

    @property
    def extension(self) -> str:
        return _EXTENSIONS[self]


_EXTENSIONS = {
    ConversionFormat.WORD: "docx",
    ConversionFormat.EXCEL: "xlsx",
    ConversionFormat.POWERPOINT: "pptx",
}


class ConversionRecord(BaseModel):
    """
    A finished conversion.

    Immutable once written. ``user_id`` is None for anonymous uploads; such
    files can still be downloaded by any logged-in user.
    """
    model_config = ConfigDict(frozen=True)

    filename: str
    original_name: str
    format: ConversionFormat
    download_url: str
    user_id: Optional[int] = None
    created_at: Optional[datetime] = None


class ConversionResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    record: ConversionRecord
    requires_login: bool
