#!/usr/bin/env python3
import os
import logging
import threading
from pathlib import Path

import numpy as np
import zstandard
from construct import Array

from arhstructs import *
from arherrors import *
from arhcrypt import load_header, decrypt_header, recover_key
from arhtrie import Trie

log = logging.getLogger(__name__)


def _table_slice(buf, offset, length, what):
    if offset < 0 or length < 0 or offset + length > len(buf):
        log.warning("%s table [%d, +%d) outside header (%d bytes), ignoring",
                    what, offset, length, len(buf))
        return None
    return bytes(buf[offset:offset + length])


def parse_tables(buf):
    """Split a decrypted header into (header, strings, nodes, file records)."""
    if len(buf) < HEADER_SIZE:
        raise Truncated("header is %d bytes, need at least %d" % (len(buf), HEADER_SIZE))
    hdr = ArhHeader.parse(bytes(buf[:HEADER_SIZE]))

    strings = _table_slice(buf, hdr.string_table_offset, hdr.string_table_length, "string")
    if strings is None:
        strings = b""

    nodes = np.zeros(0, dtype=node_dtype)
    if hdr.node_count > 0:
        raw = _table_slice(buf, hdr.node_table_offset, hdr.node_count * NODE_SIZE, "node")
        if raw is not None:
            nodes = np.frombuffer(raw, dtype=node_dtype)

    count = max(hdr.file_count, 0)
    raw = _table_slice(buf, hdr.file_table_offset, count * FILE_RECORD_SIZE, "file")
    if raw is None:
        raise Truncated("file table of %d records does not fit in the header" % count)
    records = Array(count, ArhFileRecord).parse(raw)

    return hdr, strings, nodes, records


def decompress_frame(frame, expected):
    # stop one byte past the declared size, enough to detect a mismatch
    out = bytearray()
    try:
        with zstandard.ZstdDecompressor().stream_reader(frame) as reader:
            while len(out) <= expected:
                chunk = reader.read(expected + 1 - len(out))
                if not chunk:
                    break
                out += chunk
    except zstandard.ZstdError as e:
        raise CorruptFrame("zstd: %s" % e) from e
    if len(out) != expected:
        raise SizeMismatch(expected, len(out))
    return bytes(out)


def get_variant(variant=DEFAULT_VARIANT, subheader=None):
    if not isinstance(variant, Variant):
        variant = VARIANTS[variant]
    if subheader is not None:
        variant = variant._replace(subheader=subheader)
    return variant


class ARH:
    """
    An .arh index together with its .ard data file.

    Filenames are recovered from the trie once, when the archive is
    opened. Reads from the data file are serialized on a lock, so one
    instance can be shared between threads.
    """

    def __init__(self, header_path, data_path=None, variant=DEFAULT_VARIANT, subheader=None):
        header_path = Path(header_path)
        data_path = Path(data_path) if data_path else header_path.with_suffix(".ard")
        if not data_path.is_file():
            raise FileNotFoundError("missing data file %s" % data_path)

        self.path = header_path
        self.variant = get_variant(variant, subheader)

        raw = load_header(header_path)
        self.key = recover_key(raw)
        self.header = decrypt_header(raw)
        self.hdr, strings, nodes, records = parse_tables(self.header)

        self.trie = Trie.from_table(nodes, strings, len(records))
        names = self.trie.enumerate_all()

        self.files = [
            FileEntry(
                index=i,
                header_offset=self.hdr.file_table_offset + i * FILE_RECORD_SIZE,
                offset=r.offset,
                compressed_size=r.compressed_size,
                uncompressed_size=r.uncompressed_size,
                type=r.type,
                id=r.id,
                filename=names.get(i),
            )
            for i, r in enumerate(records)
        ]
        unnamed = sum(1 for f in self.files if f.filename is None)
        if unnamed:
            log.info("%s: %d of %d files have no name in the index",
                     header_path.name, unnamed, len(self.files))

        self._lock = threading.Lock()
        self.fd = open(data_path, "rb")
        self.data_size = os.fstat(self.fd.fileno()).st_size

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def close(self):
        self.fd.close()

    def __len__(self):
        return len(self.files)

    def list_files(self):
        return self.files

    def lookup(self, path):
        return self.trie.lookup(path)

    def find(self, path):
        file_id = self.lookup(path)
        if file_id is None:
            return None
        return self.files[file_id]

    def _read_at(self, offset, size):
        with self._lock:
            self.fd.seek(offset)
            data = self.fd.read(size)
        if len(data) != size:
            raise Truncated("short read at 0x%x: wanted %d, got %d" % (offset, size, len(data)))
        return data

    def _check_range(self, entry, start):
        if start < 0 or entry.compressed_size < 0 or start + entry.compressed_size > self.data_size:
            raise OutOfRange("%s: [0x%x, +%d) outside data file (%d bytes)" % (
                entry.name, start, entry.compressed_size, self.data_size))

    def extract(self, entry):
        self._check_range(entry, entry.offset)

        if entry.type == CODEC_STORED:
            return self._read_at(entry.offset, entry.compressed_size)

        if entry.type == CODEC_ZSTD:
            if not self.variant.unpack:
                return self._read_at(entry.offset, entry.compressed_size)
            start = entry.offset + self.variant.subheader
            self._check_range(entry, start)
            frame = self._read_at(start, entry.compressed_size)
            return decompress_frame(frame, entry.uncompressed_size)

        raise UnsupportedCodec(entry.type)

    def extract_path(self, path):
        entry = self.find(path)
        if entry is None:
            return None
        return self.extract(entry)
