"""
Blob Storage Models

Pydantic models for blobs, listing entries and persisted blob properties.
"""

from datetime import datetime
from typing import Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


DEFAULT_CONTENT_TYPE = "application/octet-stream"

METADATA_HEADER_PREFIX = "x-ms-meta-"


def metadata_from_headers(headers: Mapping[str, str]) -> Dict[str, str]:
    """
    Extract blob metadata from x-ms-meta-* headers.

    Keys are case-insensitive and stored in lowercase.
    """
    metadata = {}
    for key, value in headers.items():
        if key.lower().startswith(METADATA_HEADER_PREFIX):
            meta_key = key[len(METADATA_HEADER_PREFIX):].lower()
            if meta_key:
                metadata[meta_key] = value
    return metadata


def metadata_to_headers(metadata: Mapping[str, str]) -> Dict[str, str]:
    """Convert metadata to x-ms-meta-* headers."""
    return {f"{METADATA_HEADER_PREFIX}{k}": v for k, v in metadata.items()}


class BlobProperties(BaseModel):
    """
    Properties persisted next to a blob's content.

    Stored as a JSON descriptor outside the blob tree so that the content
    layout stays one regular file per blob. Timestamps are not kept here;
    they always come from the content file.
    """

    name: str = ""
    content_type: str = DEFAULT_CONTENT_TYPE
    metadata: Dict[str, str] = Field(default_factory=dict)

    @field_validator("content_type")
    @classmethod
    def default_content_type(cls, v: str) -> str:
        """Fall back to the generic binary type for empty values."""
        return v or DEFAULT_CONTENT_TYPE

    @field_validator("metadata")
    @classmethod
    def lowercase_keys(cls, v: Dict[str, str]) -> Dict[str, str]:
        """Ensure all metadata keys are lowercase."""
        return {k.lower(): str(val) for k, val in v.items()}


class Blob(BaseModel):
    """
    A blob with its full content.

    ``created_at`` and ``modified_at`` are both the content file's mtime;
    the filesystem does not portably record a creation time.
    """

    name: str
    container: str
    account: str
    content: bytes
    content_type: str = DEFAULT_CONTENT_TYPE
    size: int
    created_at: datetime
    modified_at: datetime
    metadata: Dict[str, str] = Field(default_factory=dict)


class BlobInfo(BaseModel):
    """Listing entry for a blob. Carries no content."""

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(alias="Name")
    content_type: str = Field(default=DEFAULT_CONTENT_TYPE, alias="ContentType")
    size: int = Field(alias="ContentLength")
    last_modified: datetime = Field(alias="LastModified")
    metadata: Dict[str, str] = Field(default_factory=dict, alias="Metadata")


class BlobListResult(BaseModel):
    """Result of listing blobs in a container."""

    model_config = ConfigDict(populate_by_name=True)

    blobs: List[BlobInfo] = Field(default_factory=list, alias="Blobs")
    prefix: str = Field(default="", alias="Prefix")
    marker: Optional[str] = Field(default=None, alias="Marker")
    max_results: int = Field(default=0, alias="MaxResults")

    def to_dict(self) -> Dict:
        """Convert to the JSON body of a list response."""
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)
