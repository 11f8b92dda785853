#!/usr/bin/env python3
import sys
import logging
import threading
from pathlib import Path
from argparse import ArgumentParser
from concurrent.futures import ThreadPoolExecutor

from arh import ARH
from arherrors import ArchiveError
from arhstructs import VARIANTS, DEFAULT_VARIANT

log = logging.getLogger("arhtool")


class Cancelled(Exception):
    pass


def find_archives(inputs):
    for path in map(Path, inputs):
        if path.is_dir():
            yield from sorted(path.rglob("*.arh"))
        else:
            yield path


def output_path(root, entry):
    out = (root / entry.name.lstrip("/")).resolve()
    if not out.is_relative_to(root.resolve()):
        raise ArchiveError("%s escapes the output directory" % entry.name)
    return out


def extract_archive(arh, outdir, cancel=None):
    """Writes every file of arh under outdir, returns (written, failed)."""
    written = failed = 0
    for entry in arh.files:
        if cancel is not None and cancel.is_set():
            raise Cancelled()
        try:
            out = output_path(outdir, entry)
            data = arh.extract(entry)
            out.parent.mkdir(parents=True, exist_ok=True)
            with out.open("wb") as fd:
                fd.write(data)
        except (ArchiveError, OSError, ValueError) as e:
            log.error("%s: %s: %s", arh.path.name, entry.name, e)
            failed += 1
            continue
        written += 1
        log.debug("%s: %s (%d bytes)", arh.path.name, entry.name, len(data))
    return written, failed


def process(path, outroot, variant, subheader, cancel):
    if cancel.is_set():
        raise Cancelled()
    with ARH(path, variant=variant, subheader=subheader) as arh:
        log.info("%s: %d files", path.name, len(arh))
        return extract_archive(arh, outroot / path.stem, cancel)


def extract_all(paths, outroot, variant=DEFAULT_VARIANT, subheader=None, jobs=1, cancel=None):
    """Extracts each archive in paths; one bad archive never stops the rest."""
    cancel = cancel or threading.Event()
    written = failed = 0

    with ThreadPoolExecutor(max_workers=jobs) as pool:
        futures = [(path, pool.submit(process, path, outroot, variant, subheader, cancel))
                   for path in paths]
        try:
            for path, future in futures:
                try:
                    w, f = future.result()
                except Cancelled:
                    continue
                except (ArchiveError, OSError, ValueError) as e:
                    log.error("%s: %s", path, e)
                    failed += 1
                    continue
                written += w
                failed += f
        except KeyboardInterrupt:
            cancel.set()
            raise

    if cancel.is_set():
        log.warning("cancelled")
    log.info("extracted %d files, %d failures", written, failed)
    return written, failed


def cmd_list(args):
    with ARH(args.file, args.data, variant=args.variant, subheader=args.subheader) as arh:
        print("Index", "Offset", "Compressed", "Size", "Type", "Name", sep='\t')
        for f in arh.files:
            print(f.index, hex(f.offset), f.compressed_size, f.uncompressed_size, f.type, f.name, sep='\t')
    return 0


def cmd_lookup(args):
    status = 0
    with ARH(args.file, args.data, variant=args.variant, subheader=args.subheader) as arh:
        for name in args.paths:
            file_id = arh.lookup(name)
            if file_id is None:
                print(name, "not found", sep='\t')
                status = 1
            else:
                print(name, file_id, sep='\t')
    return status


def cmd_extract(args):
    paths = list(find_archives(args.inputs))
    if not paths:
        log.error("no .arh files found")
        return 1
    _, failed = extract_all(paths, args.out, args.variant, args.subheader, args.jobs)
    return 1 if failed else 0


argparser = ArgumentParser(prog="arhtool", description="Read Xenoblade .arh/.ard archives")
argparser.add_argument("-v", "--verbose", action="store_true")
argparser.add_argument("-q", "--quiet", action="store_true")
argparser.add_argument("--variant", choices=sorted(VARIANTS), default=DEFAULT_VARIANT)
argparser.add_argument("--subheader", type=lambda x: int(x, 0), default=None,
                       help="bytes to skip before a compressed frame")
commands = argparser.add_subparsers(dest="command", required=True)

p = commands.add_parser("list", help="list the files in an archive")
p.add_argument("file", type=Path)
p.add_argument("--data", type=Path, default=None, help="companion .ard (default: next to the .arh)")
p.set_defaults(func=cmd_list)

p = commands.add_parser("lookup", help="resolve paths to file ids")
p.add_argument("file", type=Path)
p.add_argument("paths", nargs="+")
p.add_argument("--data", type=Path, default=None)
p.set_defaults(func=cmd_lookup)

p = commands.add_parser("extract", help="extract archives or directories of archives")
p.add_argument("inputs", nargs="+")
p.add_argument("-o", "--out", type=Path, default=Path("extracted"))
p.add_argument("-j", "--jobs", type=int, default=1)
p.set_defaults(func=cmd_extract)


def main(argv=None):
    args = argparser.parse_args(argv)

    level = logging.INFO
    if args.verbose:
        level = logging.DEBUG
    elif args.quiet:
        level = logging.ERROR
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")

    try:
        return args.func(args)
    except (ArchiveError, OSError, ValueError) as e:
        log.error("%s", e)
        return 1
    except KeyboardInterrupt:
        log.error("interrupted")
        return 130


if __name__ == "__main__":
    sys.exit(main())
