"""Import batch schemas"""

from typing import Optional

from pydantic import BaseModel


class ImportBatchResponse(BaseModel):
    id: str
    marketplace: Optional[str] = None
    report_type: str
    file_name: Optional[str] = None
    status: str
    status_display: str
    row_count: int
    inserted_count: int
    updated_count: int
    skipped_count: int
    error_count: int
    notes: Optional[str] = None
    date_min: Optional[str] = None
    date_max: Optional[str] = None
    created_at: Optional[str] = None


class CleanupResult(BaseModel):
    cleaned: int
