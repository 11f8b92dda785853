import pytest
import zstandard

from arhstructs import CODEC_STORED, CODEC_ZSTD
from arhbuild import KEY, build_trie, build_header, record


@pytest.fixture
def make_archive(tmp_path):
    """
    Writes an .arh/.ard pair. Each entry is a dict with "data" and
    optionally "path", "type", "frame" (raw type 2 payload) and
    overrides for any file record field.
    """
    def make(entries, name="test", subheader=0x30, key=KEY, **overrides):
        data = bytearray()
        records = []
        names = {}
        for idx, entry in enumerate(entries):
            payload = entry["data"]
            codec = entry.get("type", CODEC_STORED)
            offset = len(data)
            if codec == CODEC_ZSTD:
                frame = entry.get("frame")
                if frame is None:
                    frame = zstandard.ZstdCompressor().compress(payload)
                data += b"xbc1" + b"\x00" * (subheader - 4) + frame
                stored = len(frame)
            else:
                data += payload
                stored = len(payload)

            r = record(offset, stored, len(payload), codec, idx)
            for field in ("offset", "compressed_size", "uncompressed_size", "id"):
                if field in entry:
                    r[field] = entry[field]
            records.append(r)
            if entry.get("path") is not None:
                names[entry["path"]] = idx

        nodes, strings = build_trie(names)
        _, header = build_header(nodes, strings, records, key, **overrides)

        arh = tmp_path / (name + ".arh")
        arh.write_bytes(header)
        (tmp_path / (name + ".ard")).write_bytes(bytes(data))
        return arh

    return make
