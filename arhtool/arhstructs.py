from collections import namedtuple

import numpy as np
from construct import *

# word 9 of a decrypted header always reads back as this
SENTINEL = 0xF3F35353
KEY_SLOT = 9

ArhHeader = Struct(
    "magic"               / Int32ul,
    "field4"              / Int32sl,
    "node_count"          / Int32sl,
    "string_table_offset" / Int32sl,
    "string_table_length" / Int32sl,
    "node_table_offset"   / Int32sl,
    "node_table_length"   / Int32sl,
    "file_table_offset"   / Int32sl,
    "file_count"          / Int32sl,
    "key"                 / Int32ul,
)
HEADER_SIZE = ArhHeader.sizeof()

ArhNode = Struct(
    "next" / Int32sl,
    "prev" / Int32sl,
)
NODE_SIZE = ArhNode.sizeof()

ArhFileRecord = Struct(
    "offset"            / Int64sl,
    "compressed_size"   / Int32sl,
    "uncompressed_size" / Int32sl,
    "type"              / Int32sl,
    "id"                / Int32sl,
)
FILE_RECORD_SIZE = ArhFileRecord.sizeof()

# leaves store a 4 byte file id right after the suffix terminator
FileId = Int32sl

int32ul = np.dtype("<u4")
node_dtype = np.dtype([("next", "<i4"), ("prev", "<i4")])

CODEC_STORED = 0
CODEC_ZSTD = 2

Variant = namedtuple("Variant", "name subheader unpack")

# subheader: bytes between a compressed entry's offset and its frame
# unpack: False exports compressed entries as stored, header included
VARIANTS = {
    "xb2": Variant("xb2", 0x30, False),
    "xb3": Variant("xb3", 0x30, True),
}
DEFAULT_VARIANT = "xb3"


class FileEntry(namedtuple("FileEntry", """
    index
    header_offset
    offset
    compressed_size
    uncompressed_size
    type
    id
    filename
""")):
    __slots__ = ()

    @property
    def name(self):
        if self.filename:
            return self.filename
        return "unknown_%d" % self.index


__all__ = [
    "SENTINEL", "KEY_SLOT",
    "ArhHeader", "ArhNode", "ArhFileRecord", "FileId",
    "HEADER_SIZE", "NODE_SIZE", "FILE_RECORD_SIZE",
    "int32ul", "node_dtype",
    "CODEC_STORED", "CODEC_ZSTD",
    "Variant", "VARIANTS", "DEFAULT_VARIANT",
    "FileEntry",
]
