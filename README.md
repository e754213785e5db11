# boltfile

Low-level access to the page format of bolt key/value database files:
page headers, leaf and branch elements, meta pages with their FNV-1a
checksums, the freelist in two flavours (a sorted array and a hashmap of
contiguous spans), and a few tools for inspecting and repairing damaged
files in place.

## Installation

```
pip install boltfile
```

To run the test suite:

```
pip install "boltfile[test]"
pytest
```

## Modules

- `boltfile.page`: `Page` (a page header viewed in place inside a buffer),
  `LeafPageElement`, `BranchPageElement`, `InBucket`, `PageInfo`,
  `new_page`, `load_bucket`, `merge_pgids`, and the format constants
  (`MAGIC`, `VERSION`, page flags, `PGID_NO_FREELIST` and so on).
- `boltfile.inode`: `Inode`, `read_inodes_from_page`,
  `write_inodes_to_page`, `used_space_in_page`.
- `boltfile.meta`: `Meta` with `validate()`, `sum64()`, `write(page)`,
  `copy_to()`, `dump(out)`, plus `load_page`, `load_page_meta` and
  `copy_file`.
- `boltfile.freelist`: `FreelistType`, the abstract `Freelist`,
  `ArrayFreelist`, `HashmapFreelist`, `TxPending` and `new_freelist`.
- `boltfile.guts`: `read_page`, `write_page`, `read_page_and_hwm_size`,
  `get_root_page` and `CorruptError`.
- `boltfile.surgeon`: `copy_page`, `clear_page`, `clear_page_elements`,
  `clear_freelist`, `revert_meta_page`.
- `boltfile.xray`: `XRay` for finding the pages that hold a key.
- `boltfile.errors`: the exception classes, all derived from `BoltError`.

## Examples

Reading a page from a database file:

```python
from boltfile.guts import read_page, read_page_and_hwm_size

page_size, hwm = read_page_and_hwm_size("my.db")
page, data = read_page("my.db", 0)
print(page.typ())  # "meta"
```

`read_page` returns the page and a `bytearray` holding it together with its
overflow pages. It raises `CorruptError` when the page id stored in the
page does not match the one asked for, or when the overflow count is
implausibly large.

Checking a meta page:

```python
from boltfile.meta import load_page_meta

meta = load_page_meta(data)
meta.validate()  # raises InvalidDatabaseError, VersionMismatchError or ChecksumError
```

Finding the pages that contain a key:

```python
from boltfile.xray import XRay

for path in XRay("my.db").find_paths_to_key(b"0451"):
    print(" -> ".join(str(pgid) for pgid in path))
```

Each path runs from the root page of the newest transaction down to a leaf
page holding the key; bucket names are found as well as plain keys.

Rolling a file back to its previous transaction when the newest one is
damaged:

```python
from boltfile.surgeon import revert_meta_page

revert_meta_page("my.db")
```

Removing elements from a page:

```python
from boltfile.surgeon import clear_page_elements

needs_freelist_reset = clear_page_elements("my.db", 7, 2, 5, False)
```

This removes elements 2 to 4 of page 7 (an `end` of -1 means "to the
last element"). It returns `True` when the page's overflow count changed
or the page is a branch page, meaning the freelist recorded in the meta
pages may now be wrong; pass `True` as the last argument to have
`clear_freelist` run at once instead.

Working with a freelist in memory:

```python
from boltfile.freelist import FreelistType, new_freelist

fl = new_freelist(FreelistType.ARRAY)
fl.read_ids([3, 4, 5, 6, 7, 9, 12, 13, 18])
assert fl.allocate(1, 3) == 3
```

The array freelist always hands out the lowest suitable page id; the
hashmap freelist finds a span of contiguous pages quickly but does not
promise the lowest id.

## What this package does not do

It works on the page level only. It does not open databases, run
transactions, or provide buckets, cursors, get/put or batching; there is
no file locking and no memory mapping. The transaction and bucket
exceptions in `boltfile.errors` are defined but nothing in the package
raises them. There is no command-line tool.

The surgery functions change files in place and take no locks. Work on a
copy (`boltfile.meta.copy_file`) when the data matters, and never on a
file that another program has open.