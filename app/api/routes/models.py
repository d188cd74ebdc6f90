"""
Route models.
Owns: Request/response schemas for all routes.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from shared.input_validation import InputRejectedError, screen_string


# =============================================================================
# Download Models
# =============================================================================


class DownloadRequest(BaseModel):
    """
    POST /api/download body.

    Fields are screened and trimmed here; path safety is enforced by
    shared.path_validation inside the download service so that every
    caller goes through the same checks.
    """
    model_config = ConfigDict(populate_by_name=True)

    storage_path: str | None = Field(default=None, alias="storagePath")
    file_name: str | None = Field(default=None, alias="fileName")

    @field_validator("storage_path", "file_name")
    @classmethod
    def screen_field(cls, v: str | None) -> str | None:
        if v is None:
            return v
        try:
            return screen_string(v)
        except InputRejectedError as e:
            raise ValueError(str(e))


class SignedUrlResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    signed_url: str = Field(..., serialization_alias="signedUrl")
    expires_at: datetime = Field(..., serialization_alias="expiresAt")


# =============================================================================
# Service Models
# =============================================================================


class PingResponse(BaseModel):
    message: str


class HealthResponse(BaseModel):
    status: str
    download_strategy: str
    details: dict[str, Any] = Field(default_factory=dict)
