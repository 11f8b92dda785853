"""
Path index stored in the ARH node table.

Every node is a (next, prev) pair of int32. For an inner node the child
reached by character c lives at index next ^ c, and that child's prev
must point back at the parent. A negative next marks a leaf: -next is an
offset into the string table where the rest of the path is stored as a
NUL terminated string followed by the int32 file id.
"""
import logging

import numpy as np

from arhstructs import FileId, node_dtype
from arherrors import InvalidTrieEdge, UnresolvableLeaf

log = logging.getLogger(__name__)

ROOT = 0


def decode_name(raw):
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError:
        return raw.decode("latin-1")


class Trie:
    __slots__ = "next", "prev", "strings", "file_count"

    def __init__(self, next, prev, strings, file_count):
        self.next = next
        self.prev = prev
        self.strings = bytes(strings)
        self.file_count = file_count

    @classmethod
    def from_table(cls, nodes, strings, file_count):
        nodes = np.asarray(nodes, dtype=node_dtype)
        return cls(nodes["next"].tolist(), nodes["prev"].tolist(), strings, file_count)

    def __len__(self):
        return len(self.next)

    def is_leaf(self, idx):
        return self.next[idx] < 0 and self.prev[idx] >= 0

    def descend(self, cur, ch):
        nxt = self.next[cur]
        if nxt < 0:
            raise InvalidTrieEdge("node %d is a leaf" % cur)
        lowered = ch.lower()
        child = nxt ^ ord(lowered if len(lowered) == 1 else ch)
        if not 0 <= child < len(self.next):
            raise InvalidTrieEdge("child %d of node %d out of range" % (child, cur))
        if self.prev[child] != cur:
            raise InvalidTrieEdge("node %d does not point back at %d" % (child, cur))
        return child

    def ascend(self, cur):
        parent = self.prev[cur]
        if not 0 <= parent < len(self.next):
            raise UnresolvableLeaf("parent %d of node %d out of range" % (parent, cur))
        code = cur ^ self.next[parent]
        if not 0 < code < 0x110000 or 0xD800 <= code <= 0xDFFF:
            raise UnresolvableLeaf("bad edge %d -> %d" % (parent, cur))
        return parent, chr(code)

    def leaf(self, idx):
        """Returns (suffix, file id) for a leaf node, or None."""
        if self.next[idx] >= 0:
            return None
        start = -self.next[idx]
        if start >= len(self.strings):
            return None
        end = self.strings.find(b"\x00", start)
        if end < 0 or end + 1 + FileId.sizeof() > len(self.strings):
            return None
        file_id = FileId.parse(self.strings[end + 1:end + 1 + FileId.sizeof()])
        if not 0 <= file_id < self.file_count:
            return None
        return decode_name(self.strings[start:end]), file_id

    def walk(self, path):
        cur = ROOT
        for pos, ch in enumerate(path):
            if self.next[cur] < 0:
                return cur, path[pos:]
            cur = self.descend(cur, ch)
        return cur, ""

    def lookup(self, path):
        if not path or not self.next:
            return None
        try:
            cur, rest = self.walk(path)
        except InvalidTrieEdge as e:
            log.debug("%s: %s", path, e)
            return None

        found = self.leaf(cur)
        if found is None:
            return None
        suffix, file_id = found
        if rest.lower() != suffix.lower():
            return None
        return file_id

    def path_of(self, idx):
        found = self.leaf(idx)
        if found is None:
            raise UnresolvableLeaf("node %d is not a readable leaf" % idx)

        chars = []
        cur = idx
        for _ in range(len(self.next)):
            if cur == ROOT or self.next[cur] == 0:
                break
            cur, ch = self.ascend(cur)
            chars.append(ch)
        else:
            raise UnresolvableLeaf("node %d never reaches the root" % idx)

        chars.reverse()
        return "".join(chars) + found[0]

    def leaves(self):
        for idx in range(len(self.next)):
            if self.is_leaf(idx):
                yield idx

    def enumerate_all(self):
        names = {}
        for idx in self.leaves():
            found = self.leaf(idx)
            if found is None:
                log.warning("leaf %d: unreadable string table entry", idx)
                continue
            try:
                names[found[1]] = self.path_of(idx)
            except UnresolvableLeaf as e:
                log.warning("leaf %d: %s", idx, e)
        return names
