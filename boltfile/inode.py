"""Internal nodes: keys and values read from or written onto a page."""

from __future__ import annotations

from dataclasses import dataclass

from .page import PAGE_HEADER_SIZE


@dataclass
class Inode:
    """An element of a node: points into a page or holds data not yet written."""

    flags: int = 0
    pgid: int = 0
    key: bytes = b""
    value: bytes = b""


def _require(condition, message):
    if not condition:
        raise AssertionError("assertion failed: " + message)


def read_inodes_from_page(page):
    """Return the elements of a leaf or branch page as inodes."""
    inodes = []
    is_leaf = page.is_leaf_page()
    for index in range(page.count):
        if is_leaf:
            elem = page.leaf_page_element(index)
            inode = Inode(flags=elem.flags, key=elem.key(), value=elem.value())
        else:
            elem = page.branch_page_element(index)
            inode = Inode(pgid=elem.pgid, key=elem.key())
        _require(len(inode.key) > 0, "read: zero-length inode key")
        inodes.append(inode)
    return inodes


def write_inodes_to_page(inodes, page):
    """Write inodes as the page's elements; return the bytes used from the page start."""
    off = PAGE_HEADER_SIZE + page.page_element_size() * len(inodes)
    is_leaf = page.is_leaf_page()
    buf = page.buf
    for index, item in enumerate(inodes):
        _require(len(item.key) > 0, "write: zero-length inode key")
        key = bytes(item.key)
        value = bytes(item.value)
        start = page.offset + off
        end = start + len(key) + len(value)
        if end > len(buf):
            raise IndexError(
                f"page data ends at {end}, beyond the buffer of {len(buf)} bytes"
            )

        if is_leaf:
            elem = page.leaf_page_element(index)
            elem.pos = start - elem.offset
            elem.flags = item.flags
            elem.ksize = len(key)
            elem.vsize = len(value)
        else:
            elem = page.branch_page_element(index)
            elem.pos = start - elem.offset
            elem.ksize = len(key)
            elem.pgid = item.pgid
            _require(elem.pgid != page.id, "write: circular dependency occurred")

        buf[start:end] = key + value
        off += end - start
    return off


def used_space_in_page(inodes, page):
    """Return the bytes the inodes would take on the page, header included."""
    off = PAGE_HEADER_SIZE + page.page_element_size() * len(inodes)
    return off + sum(len(item.key) + len(item.value) for item in inodes)