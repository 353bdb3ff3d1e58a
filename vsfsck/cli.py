from __future__ import annotations

import argparse
import logging

from vsfsck.checks import run_all_checks, total_findings
from vsfsck.constants import DEFAULT_IMAGE
from vsfsck.disk import Disk, DiskError
from vsfsck.repair import repair_image
from vsfsck.report import print_checks, print_repair, print_summary, print_verification

BANNER = """\
=============================================
          VSFS : Filesystem Checker Tool
=============================================
"""


def confirm_repair(prompt="\nDo you want to fix these errors? (y/n): "):
    try:
        answer = input(prompt)
    except EOFError:
        print()
        return False
    answer = answer.strip()
    return bool(answer) and answer[0] in ("y", "Y")


def check_image(disk: Disk, assume_yes=False, assume_no=False):
    image = disk.load()
    results = run_all_checks(image)
    print_checks(results)
    print_summary(results)

    if total_findings(results) == 0:
        print("File system is consistent. No errors found.")
        return

    if assume_no:
        proceed = False
    elif assume_yes:
        proceed = True
    else:
        proceed = confirm_repair()
    if not proceed:
        print("No changes made to the file system.")
        return

    report = repair_image(image, disk)
    for result in report.repairs:
        print_repair(result)
    print_verification(report)


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="vsfsck",
        description="Consistency checker and repairer for VSFS images",
    )
    parser.add_argument(
        "image",
        nargs="?",
        default=DEFAULT_IMAGE,
        help=f"Path to the VSFS image (default: {DEFAULT_IMAGE})",
    )
    answer = parser.add_mutually_exclusive_group()
    answer.add_argument(
        "-y", "--yes",
        action="store_true",
        help="Repair without asking",
    )
    answer.add_argument(
        "-n", "--no",
        action="store_true",
        help="Check only, never repair",
    )
    parser.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Do not print the banner",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Log disk I/O and repair details",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if not args.quiet:
        print(BANNER)
    print("VSFS Consistency Checker (vsfsck)")
    print("=================================")
    print(f"Checking file system image: {args.image}")

    try:
        disk = Disk.open(args.image)
    except DiskError as e:
        print(f"Failed to open file system image: {e}")
        return 1

    try:
        try:
            check_image(disk, args.yes, args.no)
        finally:
            disk.close()
    except DiskError as e:
        print(f"Disk error: {e}")
        return 1
    return 0
