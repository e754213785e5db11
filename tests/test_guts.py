import pytest

from boltfile.errors import InvalidDatabaseError
from boltfile.guts import (
    CorruptError,
    get_root_page,
    read_page,
    read_page_and_hwm_size,
    write_page,
)
from boltfile.inode import Inode, write_inodes_to_page
from boltfile.meta import Meta
from boltfile.page import (
    BRANCH_PAGE_FLAG,
    BUCKET_LEAF_FLAG,
    FREELIST_PAGE_FLAG,
    LEAF_PAGE_FLAG,
    MAGIC,
    META_PAGE_FLAG,
    PAGE_HEADER_SIZE,
    VERSION,
    InBucket,
    Page,
)

PAGE_SIZE = 4096
HWM = 9
LEFT_KEYS = [b"0000", b"0001", b"0002", b"0003", b"0004"]
RIGHT_KEYS = [b"0005", b"0006", b"0007", b"0008", b"0009"]
BIG_VALUE = bytes(5000)


def _page(buf, pgid, flags, inodes, overflow=0):
    page = Page(buf, pgid * PAGE_SIZE)
    page.id = pgid
    page.flags = flags
    page.count = len(inodes)
    page.overflow = overflow
    if inodes:
        write_inodes_to_page(inodes, page)
    return page


def _meta(buf, pgid, txid, root):
    page = _page(buf, pgid, META_PAGE_FLAG, [])
    meta = Meta(buf, page.offset + PAGE_HEADER_SIZE)
    meta.magic = MAGIC
    meta.version = VERSION
    meta.page_size = PAGE_SIZE
    meta.root = InBucket(root, 0)
    meta.freelist = 2
    meta.pgid = HWM
    meta.txid = txid
    meta.checksum = meta.sum64()


def _inline_bucket_value():
    inline = bytearray(64)
    page = Page(inline, 0)
    page.flags = LEAF_PAGE_FLAG
    page.count = 1
    write_inodes_to_page([Inode(key=b"nested", value=b"x")], page)
    return InBucket(0, 0).pack() + bytes(inline)


def build_db(path, meta1_root=3):
    buf = bytearray(PAGE_SIZE * HWM)
    _meta(buf, 0, 0, 3)
    _meta(buf, 1, 1, meta1_root)
    _page(buf, 2, FREELIST_PAGE_FLAG, [])
    _page(buf, 3, LEAF_PAGE_FLAG, [
        Inode(flags=BUCKET_LEAF_FLAG, key=b"data", value=InBucket(4, 0).pack()),
        Inode(flags=BUCKET_LEAF_FLAG, key=b"inline", value=_inline_bucket_value()),
    ])
    _page(buf, 4, BRANCH_PAGE_FLAG, [
        Inode(pgid=5, key=LEFT_KEYS[0]),
        Inode(pgid=6, key=RIGHT_KEYS[0]),
    ])
    _page(buf, 5, LEAF_PAGE_FLAG, [Inode(key=k, value=b"v") for k in LEFT_KEYS])
    _page(buf, 6, LEAF_PAGE_FLAG, [Inode(key=k, value=b"v") for k in RIGHT_KEYS])
    _page(buf, 7, LEAF_PAGE_FLAG, [Inode(key=b"zzzz", value=BIG_VALUE)], overflow=1)
    path.write_bytes(bytes(buf))
    return str(path)


@pytest.fixture
def db_path(tmp_path):
    return build_db(tmp_path / "db")


def _patch_page(path, pgid, **fields):
    with open(path, "rb") as f:
        data = bytearray(f.read())
    page = Page(data, pgid * PAGE_SIZE)
    for name, value in fields.items():
        setattr(page, name, value)
    with open(path, "wb") as f:
        f.write(data)


def test_read_page_and_hwm_size(db_path):
    assert read_page_and_hwm_size(db_path) == (PAGE_SIZE, HWM)


def test_read_leaf_page(db_path):
    page, buf = read_page(db_path, 5)
    assert page.id == 5
    assert page.typ() == "leaf"
    assert len(buf) == PAGE_SIZE
    assert [e.key() for e in page.leaf_page_elements()] == LEFT_KEYS


def test_read_meta_and_branch_pages(db_path):
    assert read_page(db_path, 0)[0].typ() == "meta"
    branch, _ = read_page(db_path, 4)
    assert branch.typ() == "branch"
    assert [e.pgid for e in branch.branch_page_elements()] == [5, 6]


def test_read_page_with_overflow(db_path):
    page, buf = read_page(db_path, 7)
    assert page.overflow == 1
    assert len(buf) == 2 * PAGE_SIZE
    assert page.leaf_page_element(0).value() == BIG_VALUE


def test_read_page_unexpected_id(db_path):
    _patch_page(db_path, 6, id=60)
    with pytest.raises(CorruptError, match="unexpected Page id"):
        read_page(db_path, 6)


def test_read_page_too_many_overflow_pages(db_path):
    _patch_page(db_path, 5, overflow=100)
    with pytest.raises(CorruptError, match="overflow"):
        read_page(db_path, 5)


def test_read_page_beyond_end(db_path):
    with pytest.raises(EOFError):
        read_page(db_path, HWM + 11)


def test_bad_magic(tmp_path):
    path = tmp_path / "zero"
    path.write_bytes(bytes(PAGE_SIZE))
    with pytest.raises(InvalidDatabaseError, match="magic"):
        read_page_and_hwm_size(str(path))


def test_short_file(tmp_path):
    path = tmp_path / "short"
    path.write_bytes(b"not a database")
    with pytest.raises(EOFError):
        read_page_and_hwm_size(str(path))


def test_write_page_round_trip(db_path):
    page, buf = read_page(db_path, 5)
    start = page.leaf_page_element(0).offset + page.leaf_page_element(0).pos
    buf[start] = ord("z")
    write_page(db_path, buf)
    again, again_buf = read_page(db_path, 5)
    assert again.leaf_page_element(0).key() == b"z000"
    assert again_buf == buf


def test_write_page_length_mismatch(db_path):
    _, buf = read_page(db_path, 5)
    with pytest.raises(ValueError, match="len"):
        write_page(db_path, buf + bytearray(PAGE_SIZE))


def test_get_root_page_uses_newest_meta(tmp_path):
    path = build_db(tmp_path / "db", meta1_root=7)
    assert get_root_page(path) == (7, 1)


def test_get_root_page_default(db_path):
    assert get_root_page(db_path) == (3, 1)