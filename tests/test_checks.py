import pytest

from vsfsck.checks import (
    FindingKind,
    check_bad_blocks,
    check_data_bitmap,
    check_duplicate_blocks,
    check_inode_bitmap,
    check_superblock,
    run_all_checks,
    total_findings,
)
from vsfsck.constants import BLOCK_SIZE, FS_MAGIC, INODE_COUNT
from vsfsck.disk import SUPERBLOCK_FIELDS, bitmap_get, bitmap_set, expected_value
from vsfsck.tracker import BlockTracker

from conftest import make_file_inode


def test_blank_image_is_clean(image):
    results = run_all_checks(image)
    assert [r.name for r in results] == [
        "superblock", "inode_bitmap", "data_bitmap", "duplicates", "bad_blocks",
    ]
    assert total_findings(results) == 0


class TestSuperblock:
    def test_matching_fields(self, image):
        assert check_superblock(image).count == 0

    @pytest.mark.parametrize("name", SUPERBLOCK_FIELDS)
    def test_single_field_mismatch(self, image, name):
        setattr(image.superblock, name, expected_value(name) + 1)
        result = check_superblock(image)
        assert result.count == 1
        finding = result.findings[0]
        assert finding.kind is FindingKind.SUPERBLOCK_FIELD
        assert finding.field == name
        assert finding.expected == expected_value(name)
        assert finding.actual == expected_value(name) + 1

    def test_all_fields_wrong(self, image):
        for name in SUPERBLOCK_FIELDS:
            setattr(image.superblock, name, 0)
        assert check_superblock(image).count == len(SUPERBLOCK_FIELDS)

    def test_reserved_area_ignored(self, image):
        image.superblock.reserved = b"\x01" * len(image.superblock.reserved)
        assert check_superblock(image).ok

    def test_magic_expected(self):
        assert expected_value("magic") == FS_MAGIC


class TestInodeBitmap:
    def test_marked_but_not_valid(self, image):
        bitmap_set(image.inode_bitmap, 4, 1)
        result = check_inode_bitmap(image)
        assert [(f.kind, f.inode) for f in result.findings] == [
            (FindingKind.INODE_MARKED_NOT_VALID, 4),
        ]

    def test_valid_but_not_marked(self, image):
        make_file_inode(image, 7, mark=False)
        result = check_inode_bitmap(image)
        assert [(f.kind, f.inode) for f in result.findings] == [
            (FindingKind.INODE_VALID_NOT_MARKED, 7),
        ]

    def test_deleted_inode_still_marked(self, image):
        make_file_inode(image, 3)
        image.inodes[3].dtime = 1700000000
        result = check_inode_bitmap(image)
        assert result.findings[0].kind is FindingKind.INODE_MARKED_NOT_VALID

    def test_one_finding_per_slot(self, image):
        for n in range(0, INODE_COUNT, 2):
            make_file_inode(image, n, mark=False)
        for n in range(1, INODE_COUNT, 2):
            bitmap_set(image.inode_bitmap, n, 1)
        assert check_inode_bitmap(image).count == INODE_COUNT

    def test_bits_past_inode_count_ignored(self, image):
        image.inode_bitmap[BLOCK_SIZE - 1] = 0xFF
        assert check_inode_bitmap(image).ok


class TestDataBitmap:
    def test_referenced_but_unmarked(self, image):
        make_file_inode(image, 1, 10, mark=False)
        bitmap_set(image.inode_bitmap, 1, 1)
        result = check_data_bitmap(image)
        assert result.count == 1
        finding = result.findings[0]
        assert finding.kind is FindingKind.BLOCK_REFERENCED_NOT_MARKED
        assert finding.block == 10
        assert finding.inode == 1

    def test_marked_but_unreferenced(self, image):
        bitmap_set(image.data_bitmap, 0, 1)
        result = check_data_bitmap(image)
        assert [(f.kind, f.block) for f in result.findings] == [
            (FindingKind.BLOCK_MARKED_NOT_REFERENCED, 8),
        ]

    def test_owner_is_first_claimant(self, image):
        make_file_inode(image, 2, 30, mark=False)
        make_file_inode(image, 5, 30, mark=False)
        finding = check_data_bitmap(image).findings[0]
        assert finding.inode == 2

    def test_block_of_deleted_inode_not_referenced(self, image):
        make_file_inode(image, 2, 30)
        image.inodes[2].dtime = 99
        finding = check_data_bitmap(image).findings[0]
        assert finding.kind is FindingKind.BLOCK_MARKED_NOT_REFERENCED
        assert finding.block == 30

    def test_uses_given_tracker(self, image):
        tracker = BlockTracker()
        tracker.claim(40, 11)
        finding = check_data_bitmap(image, tracker).findings[0]
        assert (finding.block, finding.inode) == (40, 11)


class TestDuplicates:
    def test_two_inodes_same_block(self, image):
        make_file_inode(image, 3, 20)
        make_file_inode(image, 8, 20)
        result = check_duplicate_blocks(image)
        assert result.count == 1
        finding = result.findings[0]
        assert finding.kind is FindingKind.DUPLICATE_BLOCK
        assert (finding.other_inode, finding.inode, finding.block) == (3, 8, 20)
        assert check_bad_blocks(image).ok

    def test_n_claimants(self, image):
        for n in (1, 4, 6, 9):
            make_file_inode(image, n, 50)
        result = check_duplicate_blocks(image)
        assert result.count == 3
        assert [f.inode for f in result.findings] == [4, 6, 9]
        assert all(f.other_inode == 1 for f in result.findings)

    def test_same_inode_twice(self, image):
        make_file_inode(image, 0, 15, 15)
        finding = check_duplicate_blocks(image).findings[0]
        assert (finding.other_inode, finding.inode) == (0, 0)
        assert finding.field == "single_indirect"

    def test_invalid_inodes_and_zero_pointers_ignored(self, image):
        make_file_inode(image, 1, 0, 0)
        make_file_inode(image, 2, 0, 0)
        make_file_inode(image, 3, 25)
        make_file_inode(image, 4, 25)
        image.inodes[4].links_count = 0
        assert check_duplicate_blocks(image).ok

    def test_fresh_state_every_run(self, image):
        make_file_inode(image, 3, 20)
        make_file_inode(image, 8, 20)
        assert check_duplicate_blocks(image).count == 1
        assert check_duplicate_blocks(image).count == 1


class TestBadBlocks:
    @pytest.mark.parametrize("block_no,bad", [(0, False), (7, True), (63, False), (64, True)])
    def test_pointer_range(self, image, block_no, bad):
        make_file_inode(image, 1, block_no)
        assert check_bad_blocks(image).count == (1 if bad else 0)

    def test_every_pointer_field(self, image):
        make_file_inode(image, 6, 1, 2, 100, 7)
        result = check_bad_blocks(image)
        assert [f.field for f in result.findings] == [
            "direct_block", "single_indirect", "double_indirect", "triple_indirect",
        ]
        assert [f.block for f in result.findings] == [1, 2, 100, 7]
        assert all(f.inode == 6 for f in result.findings)

    def test_invalid_inode_not_checked(self, image):
        make_file_inode(image, 1, 3)
        image.inodes[1].dtime = 5
        assert check_bad_blocks(image).ok

    def test_independent_of_bitmaps(self, image):
        make_file_inode(image, 1, 64, mark=False)
        assert check_bad_blocks(image).count == 1


def test_referenced_block_ten_unmarked(image):
    make_file_inode(image, 1, 10)
    bitmap_set(image.data_bitmap, 10 - 8, 0)
    assert bitmap_get(image.data_bitmap, 2) == 0

    results = run_all_checks(image)
    assert total_findings(results) == 1
    assert results[2].findings[0].kind is FindingKind.BLOCK_REFERENCED_NOT_MARKED
    assert results[2].findings[0].block == 10
