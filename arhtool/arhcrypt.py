#!/usr/bin/env python3
"""
ARH header cipher.

The header keeps its stream key in word 9, XORed with a public sentinel.
The same 32 bit key is XORed across every word of the string table and
the node table; everything else in the header is plaintext.
"""
import numpy as np

from arhstructs import SENTINEL, KEY_SLOT, HEADER_SIZE, int32ul


def load_header(path):
    with open(path, "rb") as fd:
        return bytearray(fd.read())


def words(data):
    return np.frombuffer(data, dtype=int32ul, count=len(data) // 4).copy()


def _store(buf, w):
    buf[:w.nbytes] = w.tobytes()


def table_ranges(w):
    fields = w[:KEY_SLOT].view("<i4")
    st_off, st_len, nt_off, nt_len = (int(x) for x in fields[3:7])

    def clamp(start, end):
        start = min(max(start, 0), len(w))
        end = min(max(end, 0), len(w))
        return start, max(start, end)

    return (clamp(st_off // 4, (st_off + st_len) // 4),
            clamp(nt_off // 4, (nt_off + nt_len) // 4))


def crypt_ranges(w, key):
    # XOR is its own inverse, so this both encrypts and decrypts
    key = np.uint32(key)
    for start, end in table_ranges(w):
        w[start:end] ^= key


def recover_key(data):
    if len(data) < HEADER_SIZE:
        return None
    return int(words(data[:HEADER_SIZE])[KEY_SLOT]) ^ SENTINEL


def decrypt_header(data):
    buf = bytearray(data)
    if len(buf) < HEADER_SIZE:
        return buf

    w = words(buf)
    key = int(w[KEY_SLOT]) ^ SENTINEL
    crypt_ranges(w, key)
    w[KEY_SLOT] = SENTINEL
    _store(buf, w)
    return buf


def encrypt_header(data, key):
    buf = bytearray(data)
    if len(buf) < HEADER_SIZE:
        return buf

    w = words(buf)
    crypt_ranges(w, key)
    w[KEY_SLOT] = (key ^ SENTINEL) & 0xFFFFFFFF
    _store(buf, w)
    return buf
