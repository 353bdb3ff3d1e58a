BLOCK_SIZE = 4096
TOTAL_BLOCKS = 64
INODE_SIZE = 256
INODES_PER_BLOCK = BLOCK_SIZE // INODE_SIZE
INODE_TABLE_BLOCKS = 5
INODE_COUNT = INODES_PER_BLOCK * INODE_TABLE_BLOCKS

FS_MAGIC = 0xD34D

SUPERBLOCK_BLOCK = 0
INODE_BITMAP_BLOCK = 1
DATA_BITMAP_BLOCK = 2
INODE_TABLE_START_BLOCK = 3
DATA_BLOCK_START = INODE_TABLE_START_BLOCK + INODE_TABLE_BLOCKS
DATA_BLOCK_COUNT = TOTAL_BLOCKS - DATA_BLOCK_START

DEFAULT_IMAGE = "vsfs.img"
