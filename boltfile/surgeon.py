"""Repairs applied directly to the pages of a database file."""

from __future__ import annotations

from .guts import get_root_page, read_page, read_page_and_hwm_size, write_page
from .inode import read_inodes_from_page, used_space_in_page, write_inodes_to_page
from .meta import load_page_meta
from .page import PGID_NO_FREELIST


def copy_page(path, src_page, target):
    """Overwrite page target with a copy of page src_page."""
    page, buf = read_page(path, src_page)
    page.id = target
    write_page(path, buf)


def clear_page(path, pgid):
    """Remove every element of a leaf or branch page."""
    return clear_page_elements(path, pgid, 0, -1, False)


def clear_page_elements(path, pgid, start, end, abandon_freelist):
    """Remove elements [start, end) of a leaf or branch page; end -1 means all.

    Returns True when the freelist in the meta pages may now be wrong and
    should be abandoned; with abandon_freelist it is cleared here instead.
    """
    page, buf = read_page(path, pgid)

    if not page.is_leaf_page() and not page.is_branch_page():
        raise ValueError(f'can\'t clear elements in "{page.typ()}" page')

    count = page.count
    if count == 0:
        return False
    if start < 0 or start >= count:
        raise ValueError(f"the start index ({start}) is out of range [0, {count})")
    if (end < 0 or end > count) and end != -1:
        raise ValueError(f"the end index ({end}) is out of range [0, {count}]")
    if start > end and end != -1:
        raise ValueError(
            f"the start index ({start}) is bigger than the end index ({end})"
        )
    if start == end:
        raise ValueError(
            f"invalid: the start index ({start}) is equal to the end index ({end})"
        )

    pre_overflow = page.overflow

    inodes = read_inodes_from_page(page)
    if end in (count, -1):
        kept = inodes[:start]
        page.count = start
        # The kept elements stay where they are; only their size matters.
        data_written = used_space_in_page(kept, page)
    else:
        kept = inodes[:start] + inodes[end:]
        page.count = len(kept)
        data_written = write_inodes_to_page(kept, page)

    page_size, _ = read_page_and_hwm_size(path)
    if data_written % page_size == 0:
        page.overflow = data_written // page_size - 1
    else:
        page.overflow = data_written // page_size

    datasz = page_size * (page.overflow + 1)
    write_page(path, buf[:datasz])

    if pre_overflow != page.overflow or page.is_branch_page():
        if abandon_freelist:
            clear_freelist(path)
            return False
        return True
    return False


def clear_freelist(path):
    """Mark both meta pages as having no persisted freelist."""
    for page_id in (0, 1):
        _clear_freelist_in_meta_page(path, page_id)


def _clear_freelist_in_meta_page(path, page_id):
    _, buf = read_page(path, page_id)
    meta = load_page_meta(buf)
    meta.freelist = PGID_NO_FREELIST
    meta.checksum = meta.sum64()
    write_page(path, buf)


def revert_meta_page(path):
    """Replace the newer meta page with the older one, dropping a transaction."""
    _, active = get_root_page(path)
    if active == 0:
        copy_page(path, 1, 0)
    else:
        copy_page(path, 0, 1)