"""Walking the page tree of a database file, for tests and repairs."""

from __future__ import annotations

from .guts import get_root_page, read_page
from .meta import load_page_meta


class XRay:
    """Reads the reachable page tree of a database file."""

    def __init__(self, path):
        self.path = path

    def _traverse(self, stack, callback):
        page, data = read_page(self.path, stack[-1])
        callback(page, stack)

        typ = page.typ()
        if typ == "meta":
            root = load_page_meta(data).root.root
            self._traverse([*stack, root], callback)
        elif typ == "branch":
            for elem in page.branch_page_elements():
                self._traverse([*stack, elem.pgid], callback)
        elif typ == "leaf":
            for elem in page.leaf_page_elements():
                if not elem.is_bucket_entry():
                    continue
                bucket = elem.bucket()
                if bucket.root > 0:
                    self._traverse([*stack, bucket.root], callback)
                else:
                    callback(bucket.inline_page(elem.value()), stack)

    def find_paths_to_key(self, key):
        """Return every page path from the root to a leaf holding key."""
        key = bytes(key)
        found = []

        def visit(page, stack):
            if page.typ() != "leaf":
                return
            for elem in page.leaf_page_elements():
                if elem.key() == key:
                    found.append(list(stack))

        root, _ = get_root_page(self.path)
        self._traverse([root], visit)
        return found