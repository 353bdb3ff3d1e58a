from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from vsfsck.constants import (
    INODE_COUNT,
    DATA_BLOCK_START,
    DATA_BLOCK_COUNT,
    SUPERBLOCK_BLOCK,
    INODE_BITMAP_BLOCK,
    DATA_BITMAP_BLOCK,
)
from vsfsck.checks import (
    CheckResult,
    Finding,
    FindingKind,
    check_superblock,
    run_all_checks,
    total_findings,
)
from vsfsck.disk import Disk, Image, bitmap_get, bitmap_set
from vsfsck.tracker import BlockTracker

logger = logging.getLogger(__name__)

UNFIXABLE_KINDS = (FindingKind.DUPLICATE_BLOCK, FindingKind.BAD_BLOCK)


@dataclass
class Fix:
    target: str
    location: object
    old: int
    new: int


@dataclass
class RepairResult:
    name: str
    block: int
    fixes: List[Fix] = field(default_factory=list)
    written: bool = False

    @property
    def changed(self):
        return bool(self.fixes)


@dataclass
class RepairReport:
    repairs: List[RepairResult] = field(default_factory=list)
    verification: List[CheckResult] = field(default_factory=list)

    @property
    def fixed_count(self):
        """Number of structures that needed changes."""
        return sum(1 for r in self.repairs if r.changed)

    @property
    def remaining(self):
        return total_findings(self.verification)

    @property
    def unresolved(self) -> List[Finding]:
        return [
            f
            for result in self.verification
            for f in result.findings
            if f.kind in UNFIXABLE_KINDS
        ]

    @property
    def consistent(self):
        return self.remaining == 0


def repair_superblock(image: Image):
    result = RepairResult("superblock", SUPERBLOCK_BLOCK)
    sb = image.superblock
    for finding in check_superblock(image).findings:
        setattr(sb, finding.field, finding.expected)
        result.fixes.append(
            Fix("superblock", finding.field, finding.actual, finding.expected)
        )
    return result


def repair_inode_bitmap(image: Image):
    result = RepairResult("inode_bitmap", INODE_BITMAP_BLOCK)
    for inode_no in range(INODE_COUNT):
        want = 1 if image.inodes[inode_no].is_valid else 0
        have = bitmap_get(image.inode_bitmap, inode_no)
        if want != have:
            bitmap_set(image.inode_bitmap, inode_no, want)
            result.fixes.append(Fix("inode", inode_no, have, want))
    return result


def repair_data_bitmap(image: Image):
    result = RepairResult("data_bitmap", DATA_BITMAP_BLOCK)
    tracker = BlockTracker.build(image.inodes)
    for index in range(DATA_BLOCK_COUNT):
        block_no = DATA_BLOCK_START + index
        want = 1 if tracker.is_referenced(block_no) else 0
        have = bitmap_get(image.data_bitmap, index)
        if want != have:
            bitmap_set(image.data_bitmap, index, want)
            result.fixes.append(Fix("data block", block_no, have, want))
    return result


def _persist(disk: Disk, image: Image, result: RepairResult):
    if result.block == SUPERBLOCK_BLOCK:
        disk.write_superblock(image.superblock)
    elif result.block == INODE_BITMAP_BLOCK:
        disk.write_inode_bitmap(image.inode_bitmap)
    elif result.block == DATA_BITMAP_BLOCK:
        disk.write_data_bitmap(image.data_bitmap)
    else:
        raise ValueError(f"No writer for block {result.block}")
    result.written = True


def repair_image(image: Image, disk: Optional[Disk] = None):
    """Run the three repair passes, write back what changed, then verify.

    Verification re-checks the in-memory image once. Duplicate and bad block
    references are never fixed here and show up in ``unresolved``.
    """
    report = RepairReport()
    for repair in (repair_superblock, repair_inode_bitmap, repair_data_bitmap):
        result = repair(image)
        logger.debug("%s: %d fixes", result.name, len(result.fixes))
        if result.changed and disk is not None:
            _persist(disk, image, result)
        report.repairs.append(result)
    report.verification = run_all_checks(image)
    if report.unresolved:
        logger.info("%d findings need manual intervention", len(report.unresolved))
    return report
