from __future__ import annotations

from typing import Iterable, List, Optional, Tuple

from vsfsck.constants import DATA_BLOCK_START, DATA_BLOCK_COUNT
from vsfsck.disk import Inode, is_block_valid


def _data_index(block_no: int):
    index = block_no - DATA_BLOCK_START
    if not 0 <= index < DATA_BLOCK_COUNT:
        raise ValueError(f"Block {block_no} is not in the data region")
    return index


class BlockTracker:
    """Which data blocks valid inodes point at, and the first inode to do so."""

    def __init__(self):
        self.referenced: List[bool] = [False] * DATA_BLOCK_COUNT
        self.owner: List[Optional[int]] = [None] * DATA_BLOCK_COUNT

    def reset(self):
        self.referenced = [False] * DATA_BLOCK_COUNT
        self.owner = [None] * DATA_BLOCK_COUNT

    def claim(self, block_no: int, inode_no: int) -> Optional[int]:
        """Claim *block_no* for *inode_no*.

        Returns None when the block was free. When it is already claimed the
        current owner is returned and ownership does not change.
        """
        index = _data_index(block_no)
        if self.referenced[index]:
            return self.owner[index]
        self.referenced[index] = True
        self.owner[index] = inode_no
        return None

    def is_referenced(self, block_no: int):
        return self.referenced[_data_index(block_no)]

    def owner_of(self, block_no: int) -> Optional[int]:
        return self.owner[_data_index(block_no)]

    def referenced_blocks(self):
        return [
            DATA_BLOCK_START + i
            for i, used in enumerate(self.referenced)
            if used
        ]

    @classmethod
    def build(cls, inodes: Iterable[Inode]):
        tracker = cls()
        for inode_no, _field, block_no in claimable_pointers(inodes):
            tracker.claim(block_no, inode_no)
        return tracker


def claimable_pointers(inodes: Iterable[Inode]) -> Iterable[Tuple[int, str, int]]:
    """Yield (inode_no, field, block) for every nonzero in-range pointer of a
    valid inode, in ascending inode order and fixed field order."""
    for inode_no, inode in enumerate(inodes):
        if not inode.is_valid:
            continue
        for name, block_no in inode.block_pointers():
            if block_no != 0 and is_block_valid(block_no):
                yield inode_no, name, block_no
