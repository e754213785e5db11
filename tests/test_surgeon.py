import pytest

from boltfile.guts import get_root_page, read_page
from boltfile.inode import Inode, read_inodes_from_page, write_inodes_to_page
from boltfile.meta import Meta, load_page_meta
from boltfile.page import (
    BRANCH_PAGE_FLAG,
    BUCKET_LEAF_FLAG,
    FREELIST_PAGE_FLAG,
    LEAF_PAGE_FLAG,
    MAGIC,
    META_PAGE_FLAG,
    PAGE_HEADER_SIZE,
    PGID_NO_FREELIST,
    VERSION,
    InBucket,
    Page,
)
from boltfile.surgeon import (
    clear_freelist,
    clear_page,
    clear_page_elements,
    copy_page,
    revert_meta_page,
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


def build_db(path, meta1_root=3):
    buf = bytearray(PAGE_SIZE * HWM)
    _meta(buf, 0, 0, 3)
    _meta(buf, 1, 1, meta1_root)
    _page(buf, 2, FREELIST_PAGE_FLAG, [])
    _page(buf, 3, LEAF_PAGE_FLAG, [
        Inode(flags=BUCKET_LEAF_FLAG, key=b"data", value=InBucket(4, 0).pack()),
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


def _keys(path, pgid):
    page, _ = read_page(path, pgid)
    return [inode.key for inode in read_inodes_from_page(page)]


def _meta_of(path, pgid):
    return load_page_meta(read_page(path, pgid)[1])


def test_copy_page(db_path):
    copy_page(db_path, 5, 6)
    page, _ = read_page(db_path, 6)
    assert page.id == 6
    assert _keys(db_path, 6) == LEFT_KEYS


def test_clear_page(db_path):
    assert clear_page(db_path, 5) is False
    page, _ = read_page(db_path, 5)
    assert page.count == 0
    assert page.overflow == 0
    assert clear_page(db_path, 5) is False


def test_clear_middle_elements(db_path):
    assert clear_page_elements(db_path, 5, 1, 3, False) is False
    assert _keys(db_path, 5) == [LEFT_KEYS[0], LEFT_KEYS[3], LEFT_KEYS[4]]


def test_clear_tail_elements(db_path):
    assert clear_page_elements(db_path, 6, 2, -1, False) is False
    assert _keys(db_path, 6) == RIGHT_KEYS[:2]


def test_clear_branch_elements_warns(db_path):
    assert clear_page_elements(db_path, 4, 0, 1, False) is True
    page, _ = read_page(db_path, 4)
    inodes = read_inodes_from_page(page)
    assert [(i.key, i.pgid) for i in inodes] == [(RIGHT_KEYS[0], 6)]
    assert _meta_of(db_path, 0).freelist == 2


def test_clear_branch_elements_abandons_freelist(db_path):
    assert clear_page_elements(db_path, 4, 1, -1, True) is False
    for pgid in (0, 1):
        meta = _meta_of(db_path, pgid)
        assert meta.freelist == PGID_NO_FREELIST
        assert meta.checksum == meta.sum64()


def test_clear_overflow_page_warns(db_path):
    assert clear_page(db_path, 7) is True
    page, _ = read_page(db_path, 7)
    assert page.overflow == 0
    assert page.count == 0


@pytest.mark.parametrize(
    "start, end, message",
    [
        (5, -1, "start index"),
        (-1, 2, "start index"),
        (0, 6, "end index"),
        (3, 2, "bigger than"),
        (2, 2, "equal to"),
    ],
)
def test_clear_bad_range(db_path, start, end, message):
    with pytest.raises(ValueError, match=message):
        clear_page_elements(db_path, 5, start, end, False)
    assert _keys(db_path, 5) == LEFT_KEYS


@pytest.mark.parametrize("pgid, typ", [(0, "meta"), (2, "freelist")])
def test_clear_wrong_page_type(db_path, pgid, typ):
    with pytest.raises(ValueError, match=typ):
        clear_page(db_path, pgid)


def test_clear_freelist(db_path):
    clear_freelist(db_path)
    for pgid in (0, 1):
        meta = _meta_of(db_path, pgid)
        assert meta.freelist == PGID_NO_FREELIST
        assert meta.is_freelist_persisted() is False
        assert meta.checksum == meta.sum64()


def test_revert_meta_page(tmp_path):
    path = build_db(tmp_path / "db", meta1_root=7)
    assert get_root_page(path) == (7, 1)
    revert_meta_page(path)
    assert get_root_page(path) == (3, 0)
    page, _ = read_page(path, 1)
    assert page.id == 1
    meta1 = _meta_of(path, 1)
    assert meta1.txid == _meta_of(path, 0).txid
    assert meta1.checksum == meta1.sum64()