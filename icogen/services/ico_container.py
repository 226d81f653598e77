from __future__ import annotations

import asyncio
import struct
from dataclasses import dataclass
from logging import getLogger
from pathlib import Path
from typing import Iterable, List, Sequence, Union

ICO_IMAGE_SIZES = (16, 24, 32, 48, 64, 128, 256)

HEADER_SIZE = 6
DIRECTORY_ENTRY_SIZE = 16

ICON_TYPE = 1
CURSOR_TYPE = 2

_HEADER_FORMAT = "<HHH"
_DIRECTORY_ENTRY_FORMAT = "<BBBBHHII"

logger = getLogger(__name__)


class InvalidArgumentsError(ValueError):
    """Raised when a write is requested with unusable targets or destination."""


class ImageReadError(OSError):
    """Raised when the bytes of a source image cannot be read."""


@dataclass(frozen=True)
class ImageRecord:
    size: int
    byte_length: int
    content: Union[bytes, str, Path]

    @classmethod
    def from_bytes(cls, size: int, data: bytes) -> "ImageRecord":
        return cls(size=size, byte_length=len(data), content=data)

    @classmethod
    def from_path(cls, size: int, path: Union[str, Path]) -> "ImageRecord":
        path = Path(path)
        return cls(size=size, byte_length=path.stat().st_size, content=path)


@dataclass(frozen=True)
class IcoHeader:
    reserved: int
    type: int
    count: int


@dataclass(frozen=True)
class IcoDirectoryEntry:
    width: int
    height: int
    color_count: int
    reserved: int
    planes: int
    bits_per_pixel: int
    data_size: int
    data_offset: int

    @property
    def pixel_width(self) -> int:
        return self.width or 256

    @property
    def pixel_height(self) -> int:
        return self.height or 256


def filter_images(images: Iterable[ImageRecord] | None) -> List[ImageRecord]:
    """Keep only records whose size is one of ``ICO_IMAGE_SIZES``, in order."""

    if not images:
        return []
    return [image for image in images if image.size in ICO_IMAGE_SIZES]


def encode_header(icon_type: int, count: int) -> bytes:
    return struct.pack(_HEADER_FORMAT, 0, icon_type, count)


def encode_directory_entry(entry: IcoDirectoryEntry) -> bytes:
    return struct.pack(
        _DIRECTORY_ENTRY_FORMAT,
        entry.width,
        entry.height,
        entry.color_count,
        0,
        entry.planes,
        entry.bits_per_pixel,
        entry.data_size,
        entry.data_offset,
    )


def build_directory_entries(targets: Sequence[ImageRecord]) -> List[IcoDirectoryEntry]:
    """Lay out one directory entry per target with payloads packed back to back."""

    offset = HEADER_SIZE + DIRECTORY_ENTRY_SIZE * len(targets)
    entries = []
    for target in targets:
        edge = 0 if target.size >= 256 else target.size
        entries.append(
            IcoDirectoryEntry(
                width=edge,
                height=edge,
                color_count=0,
                reserved=0,
                planes=1,
                bits_per_pixel=32,
                data_size=target.byte_length,
                data_offset=offset,
            )
        )
        offset += target.byte_length
    return entries


def encode_directory_block(targets: Sequence[ImageRecord], icon_type: int = ICON_TYPE) -> bytes:
    """Header followed by the full directory table, ready for a single write."""

    entries = build_directory_entries(targets)
    return encode_header(icon_type, len(targets)) + b"".join(
        encode_directory_entry(entry) for entry in entries
    )


def read_image_content(target: ImageRecord) -> bytes:
    if isinstance(target.content, (bytes, bytearray, memoryview)):
        return bytes(target.content)
    try:
        return Path(target.content).read_bytes()
    except OSError as exc:
        raise ImageReadError(
            exc.errno, f"Unable to read image for {target.size}px", str(target.content)
        ) from exc


def _check_write_arguments(targets: Sequence[ImageRecord], dest: Path) -> None:
    if not targets:
        raise InvalidArgumentsError(
            "Invalid arguments: at least one image is required to build an icon"
        )
    if not dest.parent.is_dir():
        raise InvalidArgumentsError(
            f"Invalid arguments: parent directory of {dest} does not exist"
        )


async def write_ico(
    targets: Sequence[ImageRecord],
    dest: Union[str, Path],
    icon_type: int = ICON_TYPE,
) -> None:
    """Write an ICO container for ``targets`` to ``dest``.

    The header and directory table go out in one write, then each payload is
    read and appended in input order. A failed read aborts the write with
    :class:`ImageReadError`; whatever was already written stays on disk.
    """

    dest = Path(dest)
    _check_write_arguments(targets, dest)

    block = encode_directory_block(targets, icon_type)
    stream = await asyncio.to_thread(dest.open, "wb")
    try:
        await asyncio.to_thread(stream.write, block)
        for target in targets:
            data = await asyncio.to_thread(read_image_content, target)
            await asyncio.to_thread(stream.write, data)
    finally:
        await asyncio.to_thread(stream.close)

    logger.info(
        "Wrote icon container to %s",
        dest,
        extra={"image_count": len(targets)},
    )


def pack_ico(targets: Sequence[ImageRecord], icon_type: int = ICON_TYPE) -> bytes:
    """Build the whole ICO container in memory."""

    if not targets:
        raise InvalidArgumentsError(
            "Invalid arguments: at least one image is required to build an icon"
        )
    block = encode_directory_block(targets, icon_type)
    return block + b"".join(read_image_content(target) for target in targets)


def read_header(buffer: bytes) -> IcoHeader:
    reserved, icon_type, count = struct.unpack_from(_HEADER_FORMAT, buffer, 0)
    return IcoHeader(reserved=reserved, type=icon_type, count=count)


def read_directory_entry(buffer: bytes, offset: int) -> IcoDirectoryEntry:
    """Decode the 16-byte directory entry starting at ``offset``."""

    fields = struct.unpack_from(_DIRECTORY_ENTRY_FORMAT, buffer, offset)
    return IcoDirectoryEntry(*fields)


def read_directory_entries(buffer: bytes) -> List[IcoDirectoryEntry]:
    header = read_header(buffer)
    return [
        read_directory_entry(buffer, HEADER_SIZE + DIRECTORY_ENTRY_SIZE * index)
        for index in range(header.count)
    ]


def extract_image(buffer: bytes, entry: IcoDirectoryEntry) -> bytes:
    end = entry.data_offset + entry.data_size
    if end > len(buffer):
        raise ValueError("Directory entry points past the end of the icon data")
    return bytes(buffer[entry.data_offset : end])
