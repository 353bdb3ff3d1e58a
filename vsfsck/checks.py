from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from vsfsck.constants import INODE_COUNT, DATA_BLOCK_START, DATA_BLOCK_COUNT
from vsfsck.disk import (
    Image,
    SUPERBLOCK_FIELDS,
    bitmap_get,
    expected_value,
    is_block_valid,
)
from vsfsck.tracker import BlockTracker, claimable_pointers


class FindingKind(Enum):
    SUPERBLOCK_FIELD = "superblock_field"
    INODE_MARKED_NOT_VALID = "inode_marked_not_valid"
    INODE_VALID_NOT_MARKED = "inode_valid_not_marked"
    BLOCK_MARKED_NOT_REFERENCED = "block_marked_not_referenced"
    BLOCK_REFERENCED_NOT_MARKED = "block_referenced_not_marked"
    DUPLICATE_BLOCK = "duplicate_block"
    BAD_BLOCK = "bad_block"


@dataclass
class Finding:
    kind: FindingKind
    inode: Optional[int] = None
    block: Optional[int] = None
    field: Optional[str] = None
    expected: Optional[int] = None
    actual: Optional[int] = None
    other_inode: Optional[int] = None


@dataclass
class CheckResult:
    name: str
    findings: List[Finding] = field(default_factory=list)

    @property
    def count(self):
        return len(self.findings)

    @property
    def ok(self):
        return not self.findings


SUPERBLOCK = "superblock"
INODE_BITMAP = "inode_bitmap"
DATA_BITMAP = "data_bitmap"
DUPLICATES = "duplicates"
BAD_BLOCKS = "bad_blocks"


def check_superblock(image: Image):
    result = CheckResult(SUPERBLOCK)
    sb = image.superblock
    for name in SUPERBLOCK_FIELDS:
        expected = expected_value(name)
        actual = getattr(sb, name)
        if actual != expected:
            result.findings.append(Finding(
                FindingKind.SUPERBLOCK_FIELD,
                field=name,
                expected=expected,
                actual=actual,
            ))
    return result


def check_inode_bitmap(image: Image):
    result = CheckResult(INODE_BITMAP)
    for inode_no in range(INODE_COUNT):
        marked = bool(bitmap_get(image.inode_bitmap, inode_no))
        valid = image.inodes[inode_no].is_valid
        if marked and not valid:
            result.findings.append(
                Finding(FindingKind.INODE_MARKED_NOT_VALID, inode=inode_no)
            )
        elif valid and not marked:
            result.findings.append(
                Finding(FindingKind.INODE_VALID_NOT_MARKED, inode=inode_no)
            )
    return result


def check_data_bitmap(image: Image, tracker: BlockTracker | None = None):
    if tracker is None:
        tracker = BlockTracker.build(image.inodes)
    result = CheckResult(DATA_BITMAP)
    for index in range(DATA_BLOCK_COUNT):
        block_no = DATA_BLOCK_START + index
        marked = bool(bitmap_get(image.data_bitmap, index))
        referenced = tracker.is_referenced(block_no)
        if marked and not referenced:
            result.findings.append(
                Finding(FindingKind.BLOCK_MARKED_NOT_REFERENCED, block=block_no)
            )
        elif referenced and not marked:
            result.findings.append(Finding(
                FindingKind.BLOCK_REFERENCED_NOT_MARKED,
                block=block_no,
                inode=tracker.owner_of(block_no),
            ))
    return result


def check_duplicate_blocks(image: Image):
    result = CheckResult(DUPLICATES)
    tracker = BlockTracker()
    for inode_no, name, block_no in claimable_pointers(image.inodes):
        owner = tracker.claim(block_no, inode_no)
        if owner is not None:
            result.findings.append(Finding(
                FindingKind.DUPLICATE_BLOCK,
                inode=inode_no,
                block=block_no,
                field=name,
                other_inode=owner,
            ))
    return result


def check_bad_blocks(image: Image):
    result = CheckResult(BAD_BLOCKS)
    for inode_no, inode in image.valid_inodes():
        for name, block_no in inode.block_pointers():
            if not is_block_valid(block_no):
                result.findings.append(Finding(
                    FindingKind.BAD_BLOCK,
                    inode=inode_no,
                    block=block_no,
                    field=name,
                ))
    return result


def run_all_checks(image: Image) -> List[CheckResult]:
    return [
        check_superblock(image),
        check_inode_bitmap(image),
        check_data_bitmap(image),
        check_duplicate_blocks(image),
        check_bad_blocks(image),
    ]


def total_findings(results: List[CheckResult]):
    return sum(r.count for r in results)
