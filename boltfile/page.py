"""On-disk page layout: page headers, page elements and bucket headers."""

from __future__ import annotations

import heapq
import mmap
import struct
import sys
from dataclasses import dataclass

PAGE_HEADER_SIZE = 16
MIN_KEYS_PER_PAGE = 2
BRANCH_PAGE_ELEMENT_SIZE = 16
LEAF_PAGE_ELEMENT_SIZE = 16
PGID_SIZE = 8
BUCKET_HEADER_SIZE = 16

BRANCH_PAGE_FLAG = 0x01
LEAF_PAGE_FLAG = 0x02
META_PAGE_FLAG = 0x04
FREELIST_PAGE_FLAG = 0x10

BUCKET_LEAF_FLAG = 0x01

MAX_MMAP_STEP = 1 << 30
VERSION = 2
MAGIC = 0xED0CDAED
PGID_NO_FREELIST = 0xFFFFFFFFFFFFFFFF
PAGE_MAX_ALLOC_SIZE = 0xFFFFFFF

# Systems without a unified buffer cache must sync regardless of NoSync.
IGNORE_NO_SYNC = sys.platform.startswith("openbsd")

DEFAULT_MAX_BATCH_SIZE = 1000
DEFAULT_MAX_BATCH_DELAY = 0.010
DEFAULT_ALLOC_SIZE = 16 * 1024 * 1024
DEFAULT_PAGE_SIZE = mmap.PAGESIZE

_MAX_INT64 = (1 << 63) - 1
_PGID = struct.Struct("<Q")


def _field(fmt, rel):
    codec = struct.Struct("<" + fmt)

    def get(self):
        return codec.unpack_from(self.buf, self.offset + rel)[0]

    def set_(self, value):
        codec.pack_into(self.buf, self.offset + rel, value)

    return property(get, set_)


def _check(condition, message):
    if not condition:
        raise AssertionError("assertion failed: " + message)


class _View:
    """A fixed-layout record at an offset inside a buffer."""

    def __init__(self, buf, offset=0):
        self.buf = buf
        self.offset = offset


class Page(_View):
    """A page header viewed in place inside a buffer."""

    id = _field("Q", 0)
    flags = _field("H", 8)
    count = _field("H", 10)
    overflow = _field("I", 12)

    def __init__(self, buf, offset=0):
        super().__init__(buf, offset)

    def typ(self):
        """Return a human-readable page type."""
        if self.is_branch_page():
            return "branch"
        if self.is_leaf_page():
            return "leaf"
        if self.is_meta_page():
            return "meta"
        if self.is_freelist_page():
            return "freelist"
        return f"unknown<{self.flags:02x}>"

    def is_branch_page(self):
        return self.flags == BRANCH_PAGE_FLAG

    def is_leaf_page(self):
        return self.flags == LEAF_PAGE_FLAG

    def is_meta_page(self):
        return self.flags == META_PAGE_FLAG

    def is_freelist_page(self):
        return self.flags == FREELIST_PAGE_FLAG

    @property
    def data_offset(self):
        """Absolute offset of the first byte after the header."""
        return self.offset + PAGE_HEADER_SIZE

    def fast_check(self, id):
        """Check that the page has the given id and exactly one known type."""
        _check(
            self.id == id,
            f"Page expected to be: {id}, but self identifies as {self.id}",
        )
        _check(
            self.is_branch_page()
            or self.is_leaf_page()
            or self.is_meta_page()
            or self.is_freelist_page(),
            f"page {self.id}: has unexpected type/flags: {self.flags:x}",
        )

    def leaf_page_element(self, index):
        return LeafPageElement(
            self.buf, self.data_offset + index * LEAF_PAGE_ELEMENT_SIZE
        )

    def leaf_page_elements(self):
        return [self.leaf_page_element(i) for i in range(self.count)]

    def branch_page_element(self, index):
        return BranchPageElement(
            self.buf, self.data_offset + index * BRANCH_PAGE_ELEMENT_SIZE
        )

    def branch_page_elements(self):
        return [self.branch_page_element(i) for i in range(self.count)]

    def freelist_page_count(self):
        """Return (index of first id, number of ids) of a freelist page."""
        _check(
            self.is_freelist_page(),
            f"can't get freelist page count from a non-freelist page: {self.flags:2x}",
        )
        count = self.count
        if count != 0xFFFF:
            return 0, count
        stored = _PGID.unpack_from(self.buf, self.data_offset)[0]
        if stored > _MAX_INT64:
            raise OverflowError(f"leading element count {stored} overflows int")
        return 1, stored

    def freelist_page_ids(self):
        """Return the page ids stored on a freelist page."""
        _check(
            self.is_freelist_page(),
            f"can't get freelist page IDs from a non-freelist page: {self.flags:2x}",
        )
        idx, count = self.freelist_page_count()
        if count == 0:
            return []
        start = self.data_offset + idx * PGID_SIZE
        return list(struct.unpack_from(f"<{count}Q", self.buf, start))

    def hexdump(self, n):
        """Write the first n bytes of the page to stderr as hex."""
        data = bytes(self.buf[self.offset:self.offset + n])
        print(data.hex(), file=sys.stderr)

    def page_element_size(self):
        if self.is_leaf_page():
            return LEAF_PAGE_ELEMENT_SIZE
        return BRANCH_PAGE_ELEMENT_SIZE

    def __str__(self):
        return (
            f"ID: {self.id}, Type: {self.typ()}, "
            f"count: {self.count}, overflow: {self.overflow}"
        )


class BranchPageElement(_View):
    """A branch page element; pos is relative to the element itself."""

    pos = _field("I", 0)
    ksize = _field("I", 4)
    pgid = _field("Q", 8)

    def key(self):
        start = self.offset + self.pos
        return bytes(self.buf[start:start + self.ksize])


class LeafPageElement(_View):
    """A leaf page element; pos is relative to the element itself."""

    flags = _field("I", 0)
    pos = _field("I", 4)
    ksize = _field("I", 8)
    vsize = _field("I", 12)

    def key(self):
        start = self.offset + self.pos
        return bytes(self.buf[start:start + self.ksize])

    def value(self):
        start = self.offset + self.pos + self.ksize
        return bytes(self.buf[start:start + self.vsize])

    def is_bucket_entry(self):
        return bool(self.flags & BUCKET_LEAF_FLAG)

    def bucket(self):
        """Return the bucket header stored in the value, or None."""
        if self.is_bucket_entry():
            return load_bucket(self.value())
        return None


_BUCKET = struct.Struct("<QQ")


@dataclass
class InBucket:
    """The stored header of a bucket; root is 0 for inline buckets."""

    root: int = 0
    sequence: int = 0

    def inc_sequence(self):
        self.sequence += 1

    def inline_page(self, value):
        """Return the inline page that follows the header in a bucket value."""
        return Page(value, BUCKET_HEADER_SIZE)

    def pack(self):
        return _BUCKET.pack(self.root, self.sequence)

    def __str__(self):
        return f"<pgid={self.root},seq={self.sequence}>"


@dataclass
class PageInfo:
    """Human-readable information about a page."""

    id: int
    type: str
    count: int
    overflow_count: int


def new_page(id, flags, count, overflow):
    """Return a page header in a fresh buffer of its own."""
    page = Page(bytearray(PAGE_HEADER_SIZE))
    page.id = id
    page.flags = flags
    page.count = count
    page.overflow = overflow
    return page


def load_bucket(buf):
    """Read a bucket header from the start of buf."""
    root, sequence = _BUCKET.unpack_from(buf, 0)
    return InBucket(root, sequence)


def merge_pgids(a, b):
    """Return the sorted merge of two sorted page id lists."""
    if not a:
        return list(b)
    if not b:
        return list(a)
    return list(heapq.merge(a, b))