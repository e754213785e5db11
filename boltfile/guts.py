"""Low-level, non-transactional access to the pages of a database file."""

from __future__ import annotations

from .errors import BoltError, InvalidDatabaseError
from .meta import load_page, load_page_meta
from .page import MAGIC

_META_CHUNK = 4096
_U32_MASK = 0xFFFFFFFF


class CorruptError(BoltError):
    """A page read from the data file is not what it should be."""

    message = "invalid value"


def _read_exact(f, offset, size):
    f.seek(offset)
    data = f.read(size)
    if len(data) != size:
        raise EOFError(f"unexpected EOF reading {size} bytes at offset {offset}")
    return bytearray(data)


def _check_id(page, page_id):
    if page.id != page_id:
        raise CorruptError(
            f"error: invalid value due to unexpected Page id: {page.id} != {page_id}"
        )


def read_page(path, page_id):
    """Return the page and its full data, overflow included, from a file."""
    page_size, hwm = read_page_and_hwm_size(path)

    with open(path, "rb") as f:
        buf = _read_exact(f, page_id * page_size, page_size)
        page = load_page(buf)
        _check_id(page, page_id)

        overflow = page.overflow
        # Two meta pages and the page itself cannot be overflow pages.
        limit = ((hwm & _U32_MASK) - 3) & _U32_MASK
        if overflow >= limit:
            raise CorruptError(
                f"error: invalid value, Page claims to have {overflow} overflow "
                f"pages (>=hwm={hwm}). Interrupting to avoid risky OOM"
            )
        if overflow == 0:
            return page, buf

        buf = _read_exact(f, page_id * page_size, (overflow + 1) * page_size)
        page = load_page(buf)
        _check_id(page, page_id)
    return page, buf


def write_page(path, page_buf):
    """Write a page, overflow included, back at the position its id gives."""
    page = load_page(page_buf)
    page_size, _ = read_page_and_hwm_size(path)
    expected = page_size * (page.overflow + 1)
    if expected != len(page_buf):
        raise ValueError(
            f"write_page: len(buf):{len(page_buf)} != "
            f"page_size*(overflow+1):{expected}"
        )
    with open(path, "r+b") as f:
        f.seek(page.id * page_size)
        f.write(bytes(page_buf))


def read_page_and_hwm_size(path):
    """Return the page size and the high water mark from the first meta page."""
    with open(path, "rb") as f:
        buf = _read_exact(f, 0, _META_CHUNK)
    meta = load_page_meta(buf)
    if meta.magic != MAGIC:
        raise InvalidDatabaseError("the Meta Page has wrong (unexpected) magic")
    return meta.page_size, meta.pgid


def get_root_page(path):
    """Return (root page id, active meta page id) of the newest transaction."""
    _, buf0 = read_page(path, 0)
    meta0 = load_page_meta(buf0)
    _, buf1 = read_page(path, 1)
    meta1 = load_page_meta(buf1)
    if meta0.txid < meta1.txid:
        return meta1.root.root, 1
    return meta0.root.root, 0