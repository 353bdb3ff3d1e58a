"""Shared fixtures: in-memory images and image files built with Disk.create."""

import pytest

from vsfsck.constants import DATA_BLOCK_START, TOTAL_BLOCKS
from vsfsck.disk import POINTER_FIELDS, Disk, Image, bitmap_set


@pytest.fixture
def image():
    return Image.blank()


@pytest.fixture
def make_image_file(tmp_path):
    """Write an Image to a fresh file and return its path."""
    def _make(img=None, name="vsfs.img"):
        path = tmp_path / name
        disk = Disk.create(str(path), img)
        disk.close()
        return str(path)
    return _make


def make_file_inode(img, inode_no, *blocks, mark=True):
    """Turn slot *inode_no* into a live file pointing at *blocks*.

    Blocks fill direct, single, double and triple in that order. With
    *mark* the bitmaps are updated to match, for blocks in the data region.
    """
    inode = img.inodes[inode_no]
    inode.mode = 0o100644
    inode.links_count = 1
    inode.dtime = 0
    inode.blocks_count = len(blocks)
    for name, block_no in zip(POINTER_FIELDS, blocks):
        setattr(inode, name, block_no)
    if mark:
        bitmap_set(img.inode_bitmap, inode_no, 1)
        for block_no in blocks:
            if DATA_BLOCK_START <= block_no < TOTAL_BLOCKS:
                bitmap_set(img.data_bitmap, block_no - DATA_BLOCK_START, 1)
    return inode
