from __future__ import annotations

from typing import List

from vsfsck.checks import (
    SUPERBLOCK,
    INODE_BITMAP,
    DATA_BITMAP,
    DUPLICATES,
    BAD_BLOCKS,
    CheckResult,
    Finding,
    FindingKind,
    total_findings,
)
from vsfsck.repair import Fix, RepairReport, RepairResult

# title, message when clean, summary when not
_CHECK_TEXT = {
    SUPERBLOCK: (
        "Checking Superblock",
        "Superblock is valid.",
        "Superblock has {n} errors.",
    ),
    INODE_BITMAP: (
        "Checking Inode Bitmap Consistency",
        "Inode bitmap is consistent.",
        "Inode bitmap has {n} inconsistencies.",
    ),
    DATA_BITMAP: (
        "Checking Data Bitmap Consistency",
        "Data bitmap is consistent.",
        "Data bitmap has {n} inconsistencies.",
    ),
    DUPLICATES: (
        "Checking for Duplicate Block References",
        "No duplicate block references found.",
        "Found {n} duplicate block references.",
    ),
    BAD_BLOCKS: (
        "Checking for Bad Block References",
        "No bad block references found.",
        "Found {n} bad block references.",
    ),
}

_REPAIR_TEXT = {
    "superblock": ("Fixing Superblock", "Superblock"),
    "inode_bitmap": ("Fixing Inode Bitmap", "Inode bitmap"),
    "data_bitmap": ("Fixing Data Bitmap", "Data bitmap"),
}

_POINTER_NAMES = {
    "direct_block": "direct",
    "single_indirect": "single indirect",
    "double_indirect": "double indirect",
    "triple_indirect": "triple indirect",
}


def _field_label(name: str):
    return name.replace("_", " ")


def format_finding(finding: Finding):
    kind = finding.kind
    if kind is FindingKind.SUPERBLOCK_FIELD:
        if finding.field == "magic":
            return (f"Invalid magic number: 0x{finding.actual:X} "
                    f"(should be 0x{finding.expected:X})")
        return (f"Invalid {_field_label(finding.field)}: {finding.actual} "
                f"(should be {finding.expected})")
    if kind is FindingKind.INODE_MARKED_NOT_VALID:
        return f"Inode {finding.inode} marked as used in bitmap but is not valid"
    if kind is FindingKind.INODE_VALID_NOT_MARKED:
        return f"Inode {finding.inode} is valid but marked as free in bitmap"
    if kind is FindingKind.BLOCK_MARKED_NOT_REFERENCED:
        return (f"Data block {finding.block} marked as used in bitmap "
                f"but not referenced by any inode")
    if kind is FindingKind.BLOCK_REFERENCED_NOT_MARKED:
        return (f"Data block {finding.block} is referenced by inode "
                f"{finding.inode} but marked as free in bitmap")
    if kind is FindingKind.DUPLICATE_BLOCK:
        return (f"Data block {finding.block} is referenced by multiple inodes "
                f"({finding.other_inode} and {finding.inode})")
    if kind is FindingKind.BAD_BLOCK:
        pointer = _POINTER_NAMES.get(finding.field, finding.field)
        return (f"Inode {finding.inode} has invalid {pointer} block pointer "
                f"({finding.block})")
    raise ValueError(f"Unknown finding kind {kind!r}")


def format_fix(fix: Fix):
    if fix.target == "superblock":
        if fix.location == "magic":
            return f"Set magic number to 0x{fix.new:X}"
        return f"Set {_field_label(fix.location)} to {fix.new}"
    return f"Set {fix.target} {fix.location} bitmap bit to {fix.new}"


def print_check(result: CheckResult):
    title, clean, dirty = _CHECK_TEXT[result.name]
    print(f"\n=== {title} ===")
    for finding in result.findings:
        print(f"ERROR: {format_finding(finding)}")
    if result.ok:
        print(clean)
    else:
        print(dirty.format(n=result.count))


def print_checks(results: List[CheckResult]):
    for result in results:
        print_check(result)


def print_summary(results: List[CheckResult]):
    print("\n=== Summary ===")
    print(f"Total errors found: {total_findings(results)}")


def print_repair(result: RepairResult):
    title, label = _REPAIR_TEXT[result.name]
    print(f"\n=== {title} ===")
    for fix in result.fixes:
        print(f"Fixed: {format_fix(fix)}")
    if not result.changed:
        print(f"No {label.lower()} fixes needed.")
    elif result.written:
        print(f"{label} fixes written to disk.")
    else:
        print(f"{label} fixes applied in memory.")


def print_verification(report: RepairReport):
    print("\n=== Repair Summary ===")
    print(f"Errors fixed: {report.fixed_count}")
    print("\nRe-checking file system...")
    print_checks(report.verification)
    if report.consistent:
        print("\nFile system is now consistent.")
    else:
        print("\nSome errors could not be fixed. Manual intervention required.")
        for finding in report.unresolved:
            print(f"  {format_finding(finding)}")
