"""The meta page record and raw file helpers."""

from __future__ import annotations

import os
import struct

from .errors import ChecksumError, InvalidDatabaseError, VersionMismatchError
from .page import (
    MAGIC,
    META_PAGE_FLAG,
    PAGE_HEADER_SIZE,
    PGID_NO_FREELIST,
    VERSION,
    InBucket,
    Page,
)

META_SIZE = 64
_CHECKSUM_OFFSET = 56
_U64_MASK = (1 << 64) - 1

_FNV64_OFFSET = 0xCBF29CE484222325
_FNV64_PRIME = 0x100000001B3


def _field(fmt, rel):
    codec = struct.Struct("<" + fmt)

    def get(self):
        return codec.unpack_from(self.buf, self.offset + rel)[0]

    def set_(self, value):
        codec.pack_into(self.buf, self.offset + rel, value)

    return property(get, set_)


_ROOT = struct.Struct("<QQ")


class Meta:
    """The meta record, viewed in place inside a buffer."""

    magic = _field("I", 0)
    version = _field("I", 4)
    page_size = _field("I", 8)
    flags = _field("I", 12)
    freelist = _field("Q", 32)
    pgid = _field("Q", 40)
    txid = _field("Q", 48)
    checksum = _field("Q", _CHECKSUM_OFFSET)

    def __init__(self, buf, offset=0):
        self.buf = buf
        self.offset = offset

    @property
    def root(self):
        """The root bucket header."""
        root, sequence = _ROOT.unpack_from(self.buf, self.offset + 16)
        return InBucket(root, sequence)

    @root.setter
    def root(self, bucket):
        _ROOT.pack_into(self.buf, self.offset + 16, bucket.root, bucket.sequence)

    def validate(self):
        """Raise if the magic, version or checksum is wrong."""
        if self.magic != MAGIC:
            raise InvalidDatabaseError()
        if self.version != VERSION:
            raise VersionMismatchError()
        if self.checksum != self.sum64():
            raise ChecksumError()

    def sum64(self):
        """Return the FNV-1a 64-bit hash of every field before the checksum."""
        h = _FNV64_OFFSET
        for byte in bytes(self.buf[self.offset:self.offset + _CHECKSUM_OFFSET]):
            h ^= byte
            h = (h * _FNV64_PRIME) & _U64_MASK
        return h

    def copy_to(self, dest):
        """Copy this record over another meta record."""
        dest.buf[dest.offset:dest.offset + META_SIZE] = bytes(
            self.buf[self.offset:self.offset + META_SIZE]
        )

    def write(self, page):
        """Stamp the checksum and write the meta onto a page."""
        root = self.root.root
        if root >= self.pgid:
            raise ValueError(
                f"root bucket pgid ({root}) above high water mark ({self.pgid})"
            )
        if self.freelist >= self.pgid and self.freelist != PGID_NO_FREELIST:
            raise ValueError(
                f"freelist pgid ({self.freelist}) above high water mark ({self.pgid})"
            )

        # The page id is 0 or 1, alternating with the transaction id.
        page.id = self.txid % 2
        page.flags = META_PAGE_FLAG

        self.checksum = self.sum64()
        self.copy_to(Meta(page.buf, page.offset + PAGE_HEADER_SIZE))

    def is_freelist_persisted(self):
        return self.freelist != PGID_NO_FREELIST

    def inc_txid(self):
        self.txid = (self.txid + 1) & _U64_MASK

    def dec_txid(self):
        self.txid = (self.txid - 1) & _U64_MASK

    def dump(self, out):
        """Write a human-readable description to a text stream."""
        out.write(f"Version:    {self.version}\n")
        out.write(f"Page Size:  {self.page_size} bytes\n")
        out.write(f"Flags:      {self.flags:08x}\n")
        out.write(f"Root:       <pgid={self.root.root}>\n")
        out.write(f"Freelist:   <pgid={self.freelist}>\n")
        out.write(f"HWM:        <pgid={self.pgid}>\n")
        out.write(f"Txn ID:     {self.txid}\n")
        out.write(f"Checksum:   {self.checksum:016x}\n")
        out.write("\n")


def load_page(buf):
    """View the start of buf as a page."""
    return Page(buf, 0)


def load_page_meta(buf):
    """View the meta record that follows the page header in buf."""
    return Meta(buf, PAGE_HEADER_SIZE)


def copy_file(src_path, dst_path):
    """Copy a database file to a path that must not exist yet."""
    if not os.path.exists(src_path):
        raise FileNotFoundError(f'source file "{src_path}" not found')
    if os.path.lexists(dst_path):
        raise FileExistsError(f'output file "{dst_path}" already exists')

    written = 0
    with open(src_path, "rb") as src, open(dst_path, "xb") as dst:
        while chunk := src.read(1 << 20):
            dst.write(chunk)
            written += len(chunk)
        initial_size = os.fstat(src.fileno()).st_size

    if initial_size != written:
        raise OSError(
            f'the byte copied ("{dst_path}": {written}) isn\'t equal to the '
            f'initial db size ("{src_path}": {initial_size})'
        )