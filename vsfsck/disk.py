from __future__ import annotations

import io
import logging
import os
import struct
from dataclasses import dataclass, field
from typing import List, Tuple

from vsfsck.constants import (
    FS_MAGIC,
    BLOCK_SIZE,
    TOTAL_BLOCKS,
    INODE_SIZE,
    INODES_PER_BLOCK,
    INODE_TABLE_BLOCKS,
    INODE_COUNT,
    SUPERBLOCK_BLOCK,
    INODE_BITMAP_BLOCK,
    DATA_BITMAP_BLOCK,
    INODE_TABLE_START_BLOCK,
    DATA_BLOCK_START,
)

logger = logging.getLogger(__name__)

SB_STRUCT = struct.Struct("<H 8I")
INODE_STRUCT = struct.Struct("<14I")

SB_RESERVED_SIZE = BLOCK_SIZE - SB_STRUCT.size
INODE_RESERVED_SIZE = INODE_SIZE - INODE_STRUCT.size

SUPERBLOCK_FIELDS = (
    "magic",
    "block_size",
    "total_blocks",
    "inode_bitmap_block",
    "data_bitmap_block",
    "inode_table_block",
    "first_data_block",
    "inode_size",
    "inode_count",
)

POINTER_FIELDS = (
    "direct_block",
    "single_indirect",
    "double_indirect",
    "triple_indirect",
)


class DiskError(Exception):
    pass


@dataclass
class Superblock:
    magic: int
    block_size: int
    total_blocks: int
    inode_bitmap_block: int
    data_bitmap_block: int
    inode_table_block: int
    first_data_block: int
    inode_size: int
    inode_count: int
    reserved: bytes = field(default=b"\x00" * SB_RESERVED_SIZE, repr=False)

    @classmethod
    def expected(cls):
        """Superblock whose checked fields all hold the compiled layout."""
        return cls(
            magic=FS_MAGIC,
            block_size=BLOCK_SIZE,
            total_blocks=TOTAL_BLOCKS,
            inode_bitmap_block=INODE_BITMAP_BLOCK,
            data_bitmap_block=DATA_BITMAP_BLOCK,
            inode_table_block=INODE_TABLE_START_BLOCK,
            first_data_block=DATA_BLOCK_START,
            inode_size=INODE_SIZE,
            inode_count=INODE_COUNT,
        )

    def pack(self):
        if len(self.reserved) != SB_RESERVED_SIZE:
            raise DiskError("Superblock reserved area has the wrong length")
        return SB_STRUCT.pack(
            self.magic,
            self.block_size,
            self.total_blocks,
            self.inode_bitmap_block,
            self.data_bitmap_block,
            self.inode_table_block,
            self.first_data_block,
            self.inode_size,
            self.inode_count,
        ) + self.reserved

    @classmethod
    def unpack(cls, data: bytes):
        if len(data) < BLOCK_SIZE:
            raise DiskError("Superblock block is too short")
        fields = SB_STRUCT.unpack_from(data, 0)
        return cls(
            magic=fields[0],
            block_size=fields[1],
            total_blocks=fields[2],
            inode_bitmap_block=fields[3],
            data_bitmap_block=fields[4],
            inode_table_block=fields[5],
            first_data_block=fields[6],
            inode_size=fields[7],
            inode_count=fields[8],
            reserved=bytes(data[SB_STRUCT.size:BLOCK_SIZE]),
        )


_EXPECTED_SUPERBLOCK = Superblock.expected()


def expected_value(field_name: str) -> int:
    return getattr(_EXPECTED_SUPERBLOCK, field_name)


@dataclass
class Inode:
    mode: int = 0
    uid: int = 0
    gid: int = 0
    size: int = 0
    atime: int = 0
    ctime: int = 0
    mtime: int = 0
    dtime: int = 0
    links_count: int = 0
    blocks_count: int = 0
    direct_block: int = 0
    single_indirect: int = 0
    double_indirect: int = 0
    triple_indirect: int = 0
    reserved: bytes = field(default=b"\x00" * INODE_RESERVED_SIZE, repr=False)

    @classmethod
    def empty(cls):
        return cls()

    @property
    def is_valid(self):
        return self.links_count > 0 and self.dtime == 0

    def block_pointers(self) -> List[Tuple[str, int]]:
        """Pointer fields in scan order. Each names exactly one data block."""
        return [(name, getattr(self, name)) for name in POINTER_FIELDS]

    def pack(self):
        if len(self.reserved) != INODE_RESERVED_SIZE:
            raise DiskError("Inode reserved area has the wrong length")
        return INODE_STRUCT.pack(
            self.mode,
            self.uid,
            self.gid,
            self.size,
            self.atime,
            self.ctime,
            self.mtime,
            self.dtime,
            self.links_count,
            self.blocks_count,
            self.direct_block,
            self.single_indirect,
            self.double_indirect,
            self.triple_indirect,
        ) + self.reserved

    @classmethod
    def unpack(cls, data: bytes, offset: int = 0):
        if len(data) - offset < INODE_SIZE:
            raise DiskError("Inode record is too short")
        fields = INODE_STRUCT.unpack_from(data, offset)
        reserved_start = offset + INODE_STRUCT.size
        return cls(
            mode=fields[0],
            uid=fields[1],
            gid=fields[2],
            size=fields[3],
            atime=fields[4],
            ctime=fields[5],
            mtime=fields[6],
            dtime=fields[7],
            links_count=fields[8],
            blocks_count=fields[9],
            direct_block=fields[10],
            single_indirect=fields[11],
            double_indirect=fields[12],
            triple_indirect=fields[13],
            reserved=bytes(data[reserved_start:offset + INODE_SIZE]),
        )


def is_block_valid(block_no: int):
    """Zero means unused; anything else must fall inside the data region."""
    return block_no == 0 or DATA_BLOCK_START <= block_no < TOTAL_BLOCKS


def _bit_position(bitmap: bytes, index: int):
    if not 0 <= index < len(bitmap) * 8:
        raise ValueError(f"Bit {index} outside a {len(bitmap)}-byte bitmap")
    return divmod(index, 8)


def bitmap_get(bitmap: bytes, index: int) -> int:
    """In-use flag *index* of a bitmap block, LSB first within each byte."""
    byte_index, shift = _bit_position(bitmap, index)
    return (bitmap[byte_index] >> shift) & 1


def bitmap_set(bitmap: bytearray, index: int, used) -> None:
    byte_index, shift = _bit_position(bitmap, index)
    if used:
        bitmap[byte_index] |= 1 << shift
    else:
        bitmap[byte_index] &= 0xFF ^ (1 << shift)


def _empty_block():
    return bytearray(BLOCK_SIZE)


@dataclass
class Image:
    """In-memory model of the metadata blocks of one image.

    Checks read it, repair passes mutate it, and ``Disk`` moves it to and
    from the backing file. Nothing else holds filesystem state.
    """
    superblock: Superblock
    inode_bitmap: bytearray = field(default_factory=_empty_block)
    data_bitmap: bytearray = field(default_factory=_empty_block)
    inodes: List[Inode] = field(
        default_factory=lambda: [Inode.empty() for _ in range(INODE_COUNT)]
    )

    @classmethod
    def blank(cls):
        return cls(superblock=Superblock.expected())

    def valid_inodes(self):
        for inode_no, inode in enumerate(self.inodes):
            if inode.is_valid:
                yield inode_no, inode

    def inode_table_block(self, index: int):
        if not 0 <= index < INODE_TABLE_BLOCKS:
            raise DiskError(f"Inode table block {index} out of range")
        first = index * INODES_PER_BLOCK
        chunk = self.inodes[first:first + INODES_PER_BLOCK]
        return b"".join(inode.pack() for inode in chunk)


class Disk:
    def __init__(self, fileobj: io.BufferedRandom, path: str):
        self.f = fileobj
        self.path = path

    def _read_at(self, offset: int, size: int):
        try:
            self.f.seek(offset)
            data = self.f.read(size)
        except OSError as e:
            raise DiskError(f"Read failed at offset {offset}: {e}") from e
        if len(data) != size:
            raise DiskError(
                f"Short read at offset {offset}: got {len(data)} of {size} bytes"
            )
        return data

    def _write_at(self, offset: int, data: bytes):
        try:
            self.f.seek(offset)
            written = self.f.write(data)
        except OSError as e:
            raise DiskError(f"Write failed at offset {offset}: {e}") from e
        if written != len(data):
            raise DiskError(
                f"Short write at offset {offset}: wrote {written} of {len(data)} bytes"
            )
        self._sync()

    def _sync(self):
        try:
            self.f.flush()
            os.fsync(self.f.fileno())
        except OSError as e:
            raise DiskError(f"Cannot flush image {self.path}: {e}") from e

    def _read_block(self, block_no: int):
        return self._read_at(block_no * BLOCK_SIZE, BLOCK_SIZE)

    def _write_block(self, block_no: int, data: bytes):
        if len(data) != BLOCK_SIZE:
            raise DiskError(
                f"Block {block_no} write of {len(data)} bytes, expected {BLOCK_SIZE}"
            )
        logger.debug("writing block %d of %s", block_no, self.path)
        self._write_at(block_no * BLOCK_SIZE, data)

    @classmethod
    def create(cls, path: str, image: Image | None = None):
        """Write a full image file at *path* and return it opened."""
        if image is None:
            image = Image.blank()
        try:
            os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)
            f = open(path, "w+b")
        except OSError as e:
            raise DiskError(f"Cannot create image {path}: {e}") from e
        try:
            f.truncate(TOTAL_BLOCKS * BLOCK_SIZE)
        except OSError as e:
            f.close()
            raise DiskError(f"Cannot size image {path}: {e}") from e
        vol = cls(fileobj=f, path=path)
        vol.write_superblock(image.superblock)
        vol.write_inode_bitmap(image.inode_bitmap)
        vol.write_data_bitmap(image.data_bitmap)
        vol.write_inode_table(image)
        return vol

    @classmethod
    def open(cls, path: str):
        if not os.path.exists(path):
            raise DiskError(f"Image {path} does not exist")
        try:
            f = open(path, "r+b")
        except OSError as e:
            raise DiskError(f"Cannot open image {path}: {e}") from e
        return cls(fileobj=f, path=path)

    def close(self):
        try:
            self._sync()
        finally:
            self.f.close()

    def size(self):
        try:
            self.f.seek(0, os.SEEK_END)
            return self.f.tell()
        except OSError as e:
            raise DiskError(f"Cannot size image {self.path}: {e}") from e

    def load(self):
        size = self.size()
        if size < TOTAL_BLOCKS * BLOCK_SIZE:
            raise DiskError(
                f"Image {self.path} is {size} bytes, smaller than "
                f"{TOTAL_BLOCKS} blocks of {BLOCK_SIZE}"
            )
        sb = Superblock.unpack(self._read_block(SUPERBLOCK_BLOCK))
        inode_bitmap = bytearray(self._read_block(INODE_BITMAP_BLOCK))
        data_bitmap = bytearray(self._read_block(DATA_BITMAP_BLOCK))
        inodes: List[Inode] = []
        for i in range(INODE_TABLE_BLOCKS):
            raw = self._read_block(INODE_TABLE_START_BLOCK + i)
            for j in range(INODES_PER_BLOCK):
                inodes.append(Inode.unpack(raw, j * INODE_SIZE))
        logger.debug("loaded %d inodes from %s", len(inodes), self.path)
        return Image(
            superblock=sb,
            inode_bitmap=inode_bitmap,
            data_bitmap=data_bitmap,
            inodes=inodes,
        )

    def write_superblock(self, sb: Superblock):
        self._write_block(SUPERBLOCK_BLOCK, sb.pack())

    def write_inode_bitmap(self, bitmap: bytearray):
        self._write_block(INODE_BITMAP_BLOCK, bytes(bitmap))

    def write_data_bitmap(self, bitmap: bytearray):
        self._write_block(DATA_BITMAP_BLOCK, bytes(bitmap))

    def write_inode_table(self, image: Image):
        for i in range(INODE_TABLE_BLOCKS):
            self._write_block(INODE_TABLE_START_BLOCK + i, image.inode_table_block(i))
