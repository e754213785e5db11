"""Tracking of free pages and of pages pending release by open transactions."""

from __future__ import annotations

import struct
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum

from .page import FREELIST_PAGE_FLAG, PAGE_HEADER_SIZE, PGID_SIZE, merge_pgids


class FreelistType(str, Enum):
    """The backend that stores free page ids."""

    ARRAY = "array"
    HASHMAP = "hashmap"


@dataclass
class TxPending:
    """Page ids freed by a transaction, with the txids that allocated them."""

    ids: list = field(default_factory=list)
    alloctx: list = field(default_factory=list)
    last_release_begin: int = 0


class Freelist(ABC):
    """Pages available for allocation and pages freed but still in use."""

    freelist_type: FreelistType

    def __init__(self):
        self.allocs = {}
        self.pending = {}
        self.cache = set()

    @abstractmethod
    def free_count(self):
        """Return the number of free pages."""

    @abstractmethod
    def allocate(self, txid, n):
        """Return the first id of n contiguous free pages, or 0 if there are none."""

    @abstractmethod
    def read_ids(self, ids):
        """Initialise the free pages from a sorted list of ids."""

    @abstractmethod
    def free_page_ids(self):
        """Return the sorted free page ids."""

    @abstractmethod
    def merge_spans(self, ids):
        """Add page ids to the free pages."""

    def _forget_ids(self):
        """Drop the free ids when an empty freelist page is read."""

    def size(self):
        """Return the size of the page after serialisation."""
        n = self.count()
        if n >= 0xFFFF:
            # The first element stores the count; see write().
            n += 1
        return PAGE_HEADER_SIZE + PGID_SIZE * n

    def count(self):
        return self.free_count() + self.pending_count()

    def pending_count(self):
        return sum(len(txp.ids) for txp in self.pending.values())

    def copyall(self):
        """Return all free and pending ids as one sorted list."""
        pending = sorted(pgid for txp in self.pending.values() for pgid in txp.ids)
        return merge_pgids(self.free_page_ids(), pending)

    def free(self, txid, page):
        """Move a page and its overflow to the transaction's pending list."""
        if page.id <= 1:
            raise ValueError(f"cannot free page 0 or 1: {page.id}")

        txp = self.pending.setdefault(txid, TxPending())
        alloc_txid = self.allocs.pop(page.id, None)
        if alloc_txid is None:
            # The freelist page is always allocated by the previous transaction.
            alloc_txid = txid - 1 if page.is_freelist_page() else 0

        for pgid in range(page.id, page.id + page.overflow + 1):
            if pgid in self.cache:
                raise ValueError(f"page {pgid} already freed")
            txp.ids.append(pgid)
            txp.alloctx.append(alloc_txid)
            self.cache.add(pgid)

    def release(self, txid):
        """Free the pending pages of every transaction up to txid."""
        released = []
        for tid in [t for t in self.pending if t <= txid]:
            released.extend(self.pending.pop(tid).ids)
        self.merge_spans(released)

    def release_range(self, begin, end):
        """Free pending pages both allocated and freed within [begin, end]."""
        if begin > end:
            return
        released = []
        for tid, txp in list(self.pending.items()):
            if tid < begin or tid > end:
                continue
            # Nothing new to release if the range has not moved.
            if txp.last_release_begin == begin:
                continue
            kept_ids, kept_alloc = [], []
            for pgid, atx in zip(txp.ids, txp.alloctx):
                if begin <= atx <= end:
                    released.append(pgid)
                else:
                    kept_ids.append(pgid)
                    kept_alloc.append(atx)
            txp.ids, txp.alloctx = kept_ids, kept_alloc
            txp.last_release_begin = begin
            if not txp.ids:
                del self.pending[tid]
        self.merge_spans(released)

    def rollback(self, txid):
        """Undo the pending frees of a transaction."""
        txp = self.pending.get(txid)
        if txp is None:
            return
        released = []
        for pgid, tx in zip(txp.ids, txp.alloctx):
            self.cache.discard(pgid)
            if tx == 0:
                continue
            if tx != txid:
                # The free is aborted; the page stays allocated by tx.
                self.allocs[pgid] = tx
            else:
                # Allocated and freed by this transaction: free again.
                released.append(pgid)
        del self.pending[txid]
        self.merge_spans(released)

    def freed(self, pgid):
        """Return whether a page is free or pending."""
        return pgid in self.cache

    def read(self, page):
        """Initialise the freelist from a freelist page."""
        if not page.is_freelist_page():
            raise ValueError(
                f"invalid freelist page: {page.id}, page type is {page.typ()}"
            )
        ids = page.freelist_page_ids()
        if not ids:
            self._forget_ids()
        else:
            self.read_ids(sorted(ids))

    def write(self, page):
        """Write every free and pending id onto a freelist page."""
        page.flags = FREELIST_PAGE_FLAG
        n = self.count()
        if n == 0:
            page.count = 0
            return
        ids = self.copyall()
        if n < 0xFFFF:
            page.count = n
        else:
            # The count field overflows: store the count as the first element.
            page.count = 0xFFFF
            ids = [n, *ids]
        struct.pack_into(f"<{len(ids)}Q", page.buf, page.data_offset, *ids)

    def reload(self, page):
        """Read a freelist page, leaving out ids that are still pending."""
        self.read(page)
        self.no_sync_reload(self.free_page_ids())

    def no_sync_reload(self, pgids):
        """Use pgids as the free pages, leaving out ids that are still pending."""
        pending = {pgid for txp in self.pending.values() for pgid in txp.ids}
        self.read_ids([pgid for pgid in pgids if pgid not in pending])

    def reindex(self):
        """Rebuild the cache of free and pending ids."""
        self.cache = set(self.free_page_ids())
        for txp in self.pending.values():
            self.cache.update(txp.ids)


class ArrayFreelist(Freelist):
    """Free pages kept as one sorted list."""

    freelist_type = FreelistType.ARRAY

    def __init__(self):
        super().__init__()
        self.ids = []

    def free_count(self):
        return len(self.ids)

    def allocate(self, txid, n):
        if not self.ids:
            return 0
        initial = previd = 0
        for index, pgid in enumerate(self.ids):
            if pgid <= 1:
                raise ValueError(f"invalid page allocation: {pgid}")
            if previd == 0 or pgid - previd != 1:
                initial = pgid
            if pgid - initial + 1 == n:
                del self.ids[index - n + 1:index + 1]
                for taken in range(initial, initial + n):
                    self.cache.discard(taken)
                self.allocs[initial] = txid
                return initial
            previd = pgid
        return 0

    def read_ids(self, ids):
        self.ids = list(ids)
        self.reindex()

    def free_page_ids(self):
        return list(self.ids)

    def merge_spans(self, ids):
        self.ids = merge_pgids(self.ids, sorted(ids))

    def _forget_ids(self):
        self.ids = []


class HashmapFreelist(Freelist):
    """Free pages kept as spans of contiguous ids, indexed by size and ends."""

    freelist_type = FreelistType.HASHMAP

    def __init__(self):
        super().__init__()
        self.freemaps = {}
        self.forward_map = {}
        self.backward_map = {}

    def free_count(self):
        return sum(self.forward_map.values())

    def allocate(self, txid, n):
        if n == 0:
            return 0

        exact = self.freemaps.get(n)
        if exact:
            pid = next(iter(exact))
            self._del_span(pid, n)
            return self._take(txid, pid, n)

        for size, starts in list(self.freemaps.items()):
            if size < n or not starts:
                continue
            pid = next(iter(starts))
            self._del_span(pid, size)
            self._add_span(pid + n, size - n)
            return self._take(txid, pid, n)
        return 0

    def _take(self, txid, pid, n):
        self.allocs[pid] = txid
        for taken in range(pid, pid + n):
            self.cache.discard(taken)
        return pid

    def read_ids(self, ids):
        self._init_spans(ids)
        self.reindex()

    def free_page_ids(self):
        return [
            pgid
            for start in sorted(self.forward_map)
            for pgid in range(start, start + self.forward_map[start])
        ]

    def merge_spans(self, ids):
        for pid in ids:
            self.merge_with_existing_span(pid)

    def merge_with_existing_span(self, pid):
        """Add pid to the free spans, joining it with its neighbours."""
        prev, nxt = pid - 1, pid + 1
        new_start, new_size = pid, 1

        prev_size = self.backward_map.get(prev)
        if prev_size is not None:
            self._del_span(prev + 1 - prev_size, prev_size)
            new_start -= prev_size
            new_size += prev_size

        next_size = self.forward_map.get(nxt)
        if next_size is not None:
            self._del_span(nxt, next_size)
            new_size += next_size

        self._add_span(new_start, new_size)

    def _add_span(self, start, size):
        self.backward_map[start - 1 + size] = size
        self.forward_map[start] = size
        self.freemaps.setdefault(size, set()).add(start)

    def _del_span(self, start, size):
        self.forward_map.pop(start, None)
        self.backward_map.pop(start + size - 1, None)
        starts = self.freemaps.get(size)
        if starts is not None:
            starts.discard(start)
            if not starts:
                del self.freemaps[size]

    def _init_spans(self, pgids):
        if not pgids:
            return
        if any(a > b for a, b in zip(pgids, pgids[1:])):
            raise ValueError("pgids not sorted")

        self.freemaps = {}
        self.forward_map = {}
        self.backward_map = {}

        start, size = pgids[0], 1
        for prev, pgid in zip(pgids, pgids[1:]):
            if pgid == prev + 1:
                size += 1
            else:
                self._add_span(start, size)
                start, size = pgid, 1
        if size != 0 and start != 0:
            self._add_span(start, size)


def new_freelist(freelist_type):
    """Return an empty freelist of the given type; anything but hashmap is array."""
    if freelist_type == FreelistType.HASHMAP:
        return HashmapFreelist()
    return ArrayFreelist()