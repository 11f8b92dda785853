class ArchiveError(Exception):
    pass


class Truncated(ArchiveError):
    """A declared range runs past the end of the header or data file."""


class InvalidTrieEdge(ArchiveError):
    """A path step lands on a node whose back reference disagrees."""


class UnresolvableLeaf(ArchiveError):
    """A leaf's parent chain does not lead back to the root."""


class OutOfRange(ArchiveError):
    pass


class SizeMismatch(ArchiveError):
    def __init__(self, expected, actual):
        ArchiveError.__init__(self, "decompressed size mismatch: expected %d, got %d" % (expected, actual))
        self.expected = expected
        self.actual = actual


class UnsupportedCodec(ArchiveError):
    def __init__(self, codec):
        ArchiveError.__init__(self, "unsupported codec type %d" % codec)
        self.codec = codec


class CorruptFrame(ArchiveError):
    pass
