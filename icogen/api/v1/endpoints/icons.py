from __future__ import annotations

import asyncio
import struct
from logging import getLogger
from typing import Annotated, List, Optional, Sequence

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from fastapi.responses import FileResponse
from starlette import status

from icogen.core.config import settings
from icogen.core.deps import get_icon_store
from icogen.models.responses import (
    DirectoryEntryResponse,
    HeaderResponse,
    IconResponse,
    InspectionResponse,
)
from icogen.services.ico_container import (
    ICO_IMAGE_SIZES,
    ImageRecord,
    InvalidArgumentsError,
    build_directory_entries,
    filter_images,
    read_directory_entries,
    read_header,
    write_ico,
)
from icogen.services.icon_store import IconNotFoundError, IconStore
from icogen.services.rasterize import (
    PAYLOAD_FORMATS,
    ResampleAlgorithm,
    probe_square_size,
    render_icon_images,
    validate_source,
)

router = APIRouter(prefix="/icons", tags=["icons"])

logger = getLogger(__name__)


async def _write_icon(
    records: Sequence[ImageRecord], store: IconStore, skipped: List[int]
) -> IconResponse:
    icon_id, dest = store.new_destination()
    try:
        await write_ico(records, dest)
    except InvalidArgumentsError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except Exception:
        store.discard(icon_id)
        raise

    logger.info("Icon written", extra={"icon_id": icon_id, "image_count": len(records)})
    return IconResponse(
        icon_id=icon_id,
        count=len(records),
        skipped_sizes=skipped,
        entries=[
            DirectoryEntryResponse.from_entry(entry)
            for entry in build_directory_entries(records)
        ],
    )


@router.post("", response_model=IconResponse, status_code=status.HTTP_201_CREATED)
async def create_icon(
    files: Annotated[List[UploadFile], File(..., description="Square PNG images, one per size")],
    store: Annotated[IconStore, Depends(get_icon_store)],
) -> IconResponse:
    candidates = []
    for upload in files:
        content = await upload.read()
        try:
            validate_source(content, upload.filename or "upload.png", PAYLOAD_FORMATS)
            size = probe_square_size(content)
        except ValueError as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
        candidates.append(ImageRecord.from_bytes(size, content))

    records = filter_images(candidates)
    skipped = [record.size for record in candidates if record.size not in ICO_IMAGE_SIZES]
    return await _write_icon(records, store, skipped)


@router.post("/render", response_model=IconResponse, status_code=status.HTTP_201_CREATED)
async def render_icon(
    file: Annotated[UploadFile, File(..., description="Source image to rasterize")],
    store: Annotated[IconStore, Depends(get_icon_store)],
    algo: Annotated[ResampleAlgorithm, Form()] = ResampleAlgorithm(settings.default_resample),
    sizes: Annotated[Optional[List[int]], Form()] = None,
) -> IconResponse:
    content = await file.read()
    requested = sizes or list(ICO_IMAGE_SIZES)
    wanted = [size for size in requested if size in ICO_IMAGE_SIZES]
    skipped = [size for size in requested if size not in ICO_IMAGE_SIZES]

    try:
        validate_source(content, file.filename or "upload.png")
        records = await asyncio.to_thread(render_icon_images, content, wanted, algo)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    return await _write_icon(records, store, skipped)


@router.post("/inspect", response_model=InspectionResponse)
async def inspect_icon(
    file: Annotated[UploadFile, File(..., description="ICO file to decode")],
) -> InspectionResponse:
    content = await file.read()
    if len(content) > settings.max_upload_size_bytes:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Uploaded file exceeds maximum size limit",
        )

    try:
        header = read_header(content)
        entries = read_directory_entries(content)
    except struct.error as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Icon data is truncated",
        ) from exc

    return InspectionResponse(
        header=HeaderResponse.from_header(header),
        entries=[DirectoryEntryResponse.from_entry(entry) for entry in entries],
    )


@router.get("/{icon_id}", response_class=FileResponse)
async def download_icon(
    icon_id: str, store: Annotated[IconStore, Depends(get_icon_store)]
) -> FileResponse:
    try:
        path = store.resolve(icon_id)
    except IconNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail=f"Icon {icon_id} not found"
        ) from exc

    return FileResponse(path, media_type="image/x-icon", filename=f"{icon_id}.ico")
