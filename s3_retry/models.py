"""Pydantic models for upload requests and results."""

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from .constants import DEFAULT_CONTENT_TYPE


class StorageCredentials(BaseModel):
    """Credentials and target passed to a storage client factory."""
    model_config = ConfigDict(frozen=True)

    access_key: str = Field(..., description="Storage access key")
    secret_key: str = Field(..., description="Storage secret key")
    bucket: str = Field(..., description="Bucket name")
    region: str = Field(..., description="Storage region")
    endpoint_url: Optional[str] = Field(None, description="Custom S3-compatible endpoint")


class UploadRequest(BaseModel):
    """One logical upload. Re-read, never mutated, across retries."""
    model_config = ConfigDict(frozen=True)

    payload: bytes = Field(..., description="Bytes to upload")
    headers: Dict[str, str] = Field(default_factory=dict, description="Request headers")
    destination: str = Field(..., description="Destination object key")

    @classmethod
    def build(cls, data: bytes, headers: Optional[Dict[str, Any]], destination: str) -> "UploadRequest":
        """Normalize headers, filling in Content-Type and Content-Length when absent."""
        normalized = {name: str(value) for name, value in (headers or {}).items()}
        present = {name.lower() for name in normalized}
        if "content-type" not in present:
            normalized["Content-Type"] = DEFAULT_CONTENT_TYPE
        if "content-length" not in present:
            normalized["Content-Length"] = str(len(data))
        return cls(payload=bytes(data), headers=normalized, destination=destination)


class UploadResponse(BaseModel):
    """Result of a successful upload."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    key: str = Field(..., description="Destination object key")
    status_code: int = Field(..., description="HTTP status of the final attempt")
    body: Any = Field(None, description="Response body reported by the storage client")
    attempts: int = Field(..., description="Attempts used, including the successful one")
    url: Optional[str] = Field(None, description="URL of the stored object")


class FileSpec(BaseModel):
    """A source file and its destination key, as given to a batch upload."""
    model_config = ConfigDict(frozen=True)

    src: str = Field(..., description="Local source path")
    dest: str = Field(..., description="Destination object key")
