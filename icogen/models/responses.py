from __future__ import annotations

from typing import List

from pydantic import BaseModel, Field

from icogen.services.ico_container import IcoDirectoryEntry, IcoHeader


class DirectoryEntryResponse(BaseModel):
    width: int = Field(..., description="Stored width byte, 0 means 256")
    height: int = Field(..., description="Stored height byte, 0 means 256")
    pixel_size: int = Field(..., description="Decoded edge length in pixels")
    color_count: int
    planes: int
    bits_per_pixel: int
    data_size: int = Field(..., description="Payload length in bytes")
    data_offset: int = Field(..., description="Payload offset from the start of the file")

    @classmethod
    def from_entry(cls, entry: IcoDirectoryEntry) -> "DirectoryEntryResponse":
        return cls(
            width=entry.width,
            height=entry.height,
            pixel_size=entry.pixel_width,
            color_count=entry.color_count,
            planes=entry.planes,
            bits_per_pixel=entry.bits_per_pixel,
            data_size=entry.data_size,
            data_offset=entry.data_offset,
        )


class HeaderResponse(BaseModel):
    reserved: int
    type: int = Field(..., description="1 for icon, 2 for cursor")
    count: int

    @classmethod
    def from_header(cls, header: IcoHeader) -> "HeaderResponse":
        return cls(reserved=header.reserved, type=header.type, count=header.count)


class IconResponse(BaseModel):
    icon_id: str = Field(..., description="Identifier used to download the written icon")
    count: int
    skipped_sizes: List[int] = Field(
        default_factory=list, description="Uploaded sizes outside the supported set"
    )
    entries: List[DirectoryEntryResponse]


class InspectionResponse(BaseModel):
    header: HeaderResponse
    entries: List[DirectoryEntryResponse]
