import struct
import threading

import pytest

from arhextract import extract_all, extract_archive, find_archives, output_path, main
from arh import ARH
from arherrors import ArchiveError
from arhstructs import CODEC_ZSTD, FileEntry
from arhbuild import build_header, record

PAYLOAD = b"0123456789abcdef" * 64


@pytest.fixture
def archive(make_archive):
    return make_archive([
        dict(path="/chr/pc/pc010101.wimdo", data=PAYLOAD, type=CODEC_ZSTD),
        dict(path="/chr/pc/pc010101.wismt", data=b"broken", type=7),
        dict(path="/bgm/title.wem", data=b"RIFF"),
        dict(data=b"orphan"),
    ], name="chr")


def test_extract_archive(archive, tmp_path):
    out = tmp_path / "out"
    with ARH(archive) as arh:
        written, failed = extract_archive(arh, out)
    assert (written, failed) == (3, 1)
    assert (out / "chr/pc/pc010101.wimdo").read_bytes() == PAYLOAD
    assert (out / "bgm/title.wem").read_bytes() == b"RIFF"
    assert (out / "unknown_3").read_bytes() == b"orphan"
    assert not (out / "chr/pc/pc010101.wismt").exists()


def test_extract_all(archive, make_archive, tmp_path):
    other = make_archive([dict(path="/a.txt", data=b"a")], name="other")
    out = tmp_path / "out"
    written, failed = extract_all([archive, other], out, jobs=2)
    assert (written, failed) == (4, 1)
    assert (out / "chr/bgm/title.wem").exists()
    assert (out / "other/a.txt").read_bytes() == b"a"


def test_missing_companion_does_not_stop_batch(archive, make_archive, tmp_path):
    lonely = make_archive([dict(path="/a.txt", data=b"a")], name="lonely")
    lonely.with_suffix(".ard").unlink()
    out = tmp_path / "out"
    written, failed = extract_all([lonely, archive], out)
    assert failed == 2
    assert written == 3
    assert not (out / "lonely").exists()


def test_cancel(archive, tmp_path):
    cancel = threading.Event()
    cancel.set()
    out = tmp_path / "out"
    assert extract_all([archive], out, cancel=cancel) == (0, 0)
    assert not out.exists()


def test_output_path_stays_inside(tmp_path):
    entry = FileEntry(0, 0, 0, 0, 0, 0, 0, "/../../etc/passwd")
    with pytest.raises(ArchiveError):
        output_path(tmp_path, entry)
    entry = entry._replace(filename="/a/b.bin")
    assert output_path(tmp_path, entry) == (tmp_path / "a/b.bin").resolve()


def test_find_archives(archive, tmp_path):
    nested = tmp_path / "deep" / "er"
    nested.mkdir(parents=True)
    (nested / "x.arh").write_bytes(b"")
    found = list(find_archives([tmp_path]))
    assert archive in found
    assert nested / "x.arh" in found
    assert list(find_archives([archive])) == [archive]


def test_cli_list(archive, capsys):
    assert main(["list", str(archive)]) == 0
    out = capsys.readouterr().out
    assert "/bgm/title.wem" in out
    assert "unknown_3" in out


def test_cli_lookup(archive, capsys):
    assert main(["lookup", str(archive), "/bgm/title.wem"]) == 0
    assert capsys.readouterr().out.strip() == "/bgm/title.wem\t2"
    assert main(["lookup", str(archive), "/nope"]) == 1
    assert "not found" in capsys.readouterr().out


def test_cli_extract(archive, tmp_path):
    out = tmp_path / "cli"
    assert main(["-q", "extract", str(archive.parent), "-o", str(out)]) == 1
    assert (out / "chr/bgm/title.wem").read_bytes() == b"RIFF"


def test_cli_extract_nothing(tmp_path):
    assert main(["extract", str(tmp_path), "-o", str(tmp_path / "out")]) == 1


def test_cli_missing_archive(tmp_path):
    assert main(["list", str(tmp_path / "nope.arh")]) == 1


def write_pair(directory, name, nodes, strings, records, data):
    _, header = build_header(nodes, strings, records)
    arh = directory / (name + ".arh")
    arh.write_bytes(header)
    (directory / (name + ".ard")).write_bytes(data)
    return arh


def test_unencodable_name_stays_local(make_archive, tmp_path):
    # the only edge out of the root decodes to a lone surrogate
    strings = b"\x00x\x00" + struct.pack("<i", 0)
    bad = write_pair(tmp_path, "bad", [(0xD801, -1), (-1, 0)], strings,
                     [record(0, 3, 3)], b"bad")
    good = make_archive([dict(path="a", data=b"good")], name="good")
    out = tmp_path / "out"

    written, failed = extract_all([bad, good], out)
    assert (written, failed) == (2, 0)
    assert (out / "bad/unknown_0").read_bytes() == b"bad"
    assert (out / "good/a").read_bytes() == b"good"


def test_bad_output_name_fails_one_entry(archive, tmp_path):
    out = tmp_path / "out"
    with ARH(archive) as arh:
        arh.files[2] = arh.files[2]._replace(filename="/bgm/\ud800.wem")
        written, failed = extract_archive(arh, out)
    assert (written, failed) == (2, 2)
    assert (out / "unknown_3").read_bytes() == b"orphan"


def test_cancel_between_entries(archive, tmp_path, monkeypatch):
    cancel = threading.Event()
    extract = ARH.extract

    def extract_then_cancel(self, entry):
        data = extract(self, entry)
        cancel.set()
        return data

    monkeypatch.setattr(ARH, "extract", extract_then_cancel)
    out = tmp_path / "out"
    assert extract_all([archive], out, cancel=cancel) == (0, 0)
    assert (out / "chr/chr/pc/pc010101.wimdo").read_bytes() == PAYLOAD
    assert not (out / "chr/bgm/title.wem").exists()
    assert not (out / "chr/unknown_3").exists()
