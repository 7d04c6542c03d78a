# (c) Copyright 2021 by Coinkite Inc. This file is covered by license found in COPYING-CC.
#
import struct
import bech32
from binascii import b2a_hex
from typing import List, NamedTuple, Sequence
from .constants import *
from .compat import hash160
from .exceptions import PathTooLong, EmptyTransaction, BadResponse

# show bytes as hex in a string
B2A = lambda x: b2a_hex(x).decode('ascii')


def encode_path(path: Sequence[int], harden_count: int = 0, max_depth=MAX_BIP32_PATH_DEPTH) -> bytes:
    # Serialize a numeric path the way the app wants it:
    # - one byte of length, then BE32 per component
    # - first "harden_count" components get the hardened bit
    path = list(path)
    if len(path) > max_depth:
        raise PathTooLong(f"Maximum bip32 depth = {max_depth}, got {len(path)}")
    if not (0 <= harden_count <= len(path)):
        raise ValueError(f"Cannot harden {harden_count} of {len(path)} path components")

    rv = bytes([len(path)])
    for pos, num in enumerate(path):
        if not (0 <= num <= 0xffff_ffff):
            raise ValueError(f"Path component out of range: {num}")
        if pos < harden_count:
            num |= HARDENED
        rv += struct.pack('>I', num)

    return rv

def decode_path(data: bytes) -> List[int]:
    # reverse of encode_path, hardened bits are kept; trailing bytes ignored
    if not data:
        raise ValueError("Empty path")
    count = data[0]
    if len(data) < 1 + (4 * count):
        raise ValueError("Truncated path")
    return list(struct.unpack_from('>%dI' % count, data, 1))

def encoded_path_len(data: bytes) -> int:
    # how many bytes does the encoded path at start of data occupy
    return 1 + (4 * data[0])

def path_component_in_range(num: int) -> bool:
    # cannot be less than 0
    # cannot be more than (2 ** 31) - 1
    if 0 <= num < HARDENED:
        return True
    return False

def path2str(path):
    # take numeric path (list of numbers) and convert to human form
    # - standardizing on "m/44h" style
    return '/'.join(['m'] + [str(i & ~HARDENED)+('h' if i&HARDENED else '') for i in path])

def str2path(path):
    # normalize notation and return numbers, no error checking
    rv = []

    for i in path.split('/'):
        if i == 'm':
            continue
        if not i:
            # trailing or duplicated slashes
            continue

        if i[-1] in "'phHP":
            if len(i) < 2:
                raise ValueError(f"Malformed bip32 path component: {i}")
            num = int(i[:-1], 0)
            if not path_component_in_range(num):
                raise ValueError(f"Hardened path component out of range: {i}")
            here = num | HARDENED
        else:
            here = int(i, 0)
            if not path_component_in_range(here):
                raise ValueError(f"Non-hardened path component out of range: {i}")

        rv.append(here)

    return rv

# predicate for numeric paths
none_hardened = lambda path: not any(bool(i & HARDENED) for i in path)


class Frame(NamedTuple):
    # One APDU going to the device. Built fresh each time, never mutated.
    cla: int
    ins: int
    p1: int = 0
    p2: int = 0
    payload: bytes = b''

    @property
    def length(self):
        return len(self.payload)

    def serialize(self) -> bytes:
        if self.length > MAX_APDU_DATA:
            raise ValueError(f"APDU payload too long: {self.length} > {MAX_APDU_DATA}")
        return bytes([self.cla, self.ins, self.p1, self.p2, self.length]) + bytes(self.payload)

    @classmethod
    def parse(cls, raw: bytes) -> 'Frame':
        if len(raw) < 5:
            raise ValueError("APDU too short")
        cla, ins, p1, p2, ln = raw[0:5]
        payload = bytes(raw[5:])
        if ln != len(payload):
            raise ValueError(f"APDU length field {ln} but {len(payload)} bytes follow")
        return cls(cla, ins, p1, p2, payload)


def chunk_payload(data: bytes, size: int):
    # Split transaction into pieces that fit in one APDU each.
    # - always at least one piece, so empty input is refused
    # - yields (is_last, chunk)
    if not data:
        raise EmptyTransaction("Transaction is empty")
    assert size >= 1

    for pos in range(0, len(data), size):
        yield (pos + size >= len(data)), data[pos:pos+size]


def parse_version(resp: bytes):
    # [major][minor][patch] commit 0x00 app_name
    # - returns (major, minor, patch, commit_hex, name)
    if len(resp) < 3:
        raise BadResponse("Version response too short: %d bytes" % len(resp))

    major, minor, patch = resp[0:3]
    parts = bytes(resp[3:]).split(b'\x00')
    commit = B2A(parts[0])
    name = parts[1].decode('ascii', 'replace') if len(parts) > 1 else ''

    return major, minor, patch, commit, name

def parse_extended_pubkey(resp: bytes):
    # [pk_len][pk...][cc_len][cc...]
    # - returns (pubkey, chain_code)
    if not resp:
        raise BadResponse("Empty extended public key response")

    pk_len = resp[0]
    cc_at = 2 + pk_len
    if len(resp) < cc_at:
        raise BadResponse("Extended public key response truncated in pubkey")
    cc_len = resp[1 + pk_len]
    if len(resp) < cc_at + cc_len:
        raise BadResponse("Extended public key response truncated in chain code")

    pubkey = bytes(resp[1:1+pk_len])
    chain_code = bytes(resp[cc_at:cc_at+cc_len])

    if pk_len not in (33, 65) or cc_len != CHAIN_CODE_SIZE:
        raise BadResponse(f"Unexpected sizes: pubkey={pk_len} chain_code={cc_len}")

    return pubkey, chain_code


def render_address(short_addr, hrp):
    # make the text string used as a payment address
    # - short_addr is hash160 of compressed pubkey (20 bytes)
    assert len(short_addr) == SHORT_ADDR_SIZE
    return bech32.bech32_encode(hrp, bech32.convertbits(short_addr, 8, 5))

def pubkey_to_short_addr(pubkey):
    assert len(pubkey) == 33, 'expecting compressed pubkey'
    return hash160(pubkey)

# EOF
