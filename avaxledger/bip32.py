#
# (c) Copyright 2022 by Coinkite Inc. This file is covered by license found in COPYING-CC.
#
# Public-only BIP-32 child derivation, one level deep, for address indexes
# under the xpub we get from the device.
#
import hmac
import hashlib
from typing import List, NamedTuple, Tuple

from .constants import HARDENED, CHAIN_CODE_SIZE
from .compat import CT_decode_pubkey, CT_pubkey_point, CT_pubkey_tweak_add
from .exceptions import InvalidChildKey

# secp256k1 group order
N = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141


def big_endian_to_int(b: bytes) -> int:
    """
    Big endian representation to integer.

    :param b: big endian representation
    :return: integer
    """
    return int.from_bytes(b, "big")


def int_to_big_endian(n: int, length: int) -> bytes:
    """
    Represents integer in big endian byteorder.

    :param n: integer
    :param length: byte length
    :return: big endian
    """
    return n.to_bytes(length, "big")


def compress_pubkey(pubkey: bytes) -> bytes:
    """
    Re-encode a SEC public key (33 or 65 bytes) as 33 bytes compressed.

    Raises ValueError if the bytes are not a point on secp256k1.
    """
    if len(pubkey) not in (33, 65):
        raise ValueError("Public key must be 33 or 65 bytes, got %d" % len(pubkey))
    # no hybrid (0x06, 0x07) encodings
    if pubkey[0] not in ((2, 3) if len(pubkey) == 33 else (4,)):
        raise ValueError("Bad public key prefix: 0x%02x" % pubkey[0])
    return CT_decode_pubkey(pubkey)


def derive_child(parent_pubkey: bytes, chain_code: bytes, index: int) -> bytes:
    """
    The function CKDpub((Kpar, cpar), i) -> Ki, without the child chain code.

    * Check whether i >= 2**31 (whether the child is a hardened key).
    * If so (hardened child):
        return failure
    * If not (normal child):
        let I = HMAC-SHA512(Key=cpar, Data=serP(Kpar) || ser32(i)).
    * Split I into two 32-byte sequences, IL and IR. IR is not used.
    * The returned child key Ki is point(parse256(IL)) + Kpar.
    * In case parse256(IL) >= n or is zero, or Ki is the point at infinity,
        the resulting key is invalid, and one should proceed with the next
        value for i.

    :param parent_pubkey: compressed or uncompressed parent public key
    :param chain_code: 32 bytes of parent chain code
    :param index: derivation index
    :return: compressed child public key (33 bytes)
    """
    if not (0 <= index < HARDENED):
        raise ValueError("failure: hardened or out of range child for public ckd: %d" % index)
    if len(chain_code) != CHAIN_CODE_SIZE:
        raise ValueError("Chain code must be %d bytes" % CHAIN_CODE_SIZE)

    sec = compress_pubkey(parent_pubkey)

    I = hmac.new(key=chain_code, msg=sec + int_to_big_endian(index, 4),
                                    digestmod=hashlib.sha512).digest()
    IL = I[:32]

    il = big_endian_to_int(IL)
    if il == 0 or il >= N:
        raise InvalidChildKey("tweak for index %d is not a valid scalar" % index)

    try:
        child = CT_pubkey_tweak_add(sec, IL)
    except ValueError:
        raise InvalidChildKey("child key for index %d is the point at infinity" % index)

    x, y = CT_pubkey_point(child)
    if x == 0 or y == 0:
        raise InvalidChildKey("child key for index %d has a zero coordinate" % index)

    return child


class ChildKey(NamedTuple):
    # A derived pubkey and where it came from; no chain code, cannot go deeper.
    pubkey: bytes
    index: int
    path_suffix: Tuple[int, ...]


class ExtendedPublicKey(object):
    """
    Pubkey and chain code as provided by the device for one fixed path.

    Only direct children can be derived; there is no child chain code.
    """

    __slots__ = ("public_key", "chain_code", "path")

    def __init__(self, public_key: bytes, chain_code: bytes, path: Tuple[int, ...] = ()):
        if len(chain_code) != CHAIN_CODE_SIZE:
            raise ValueError("Chain code must be %d bytes" % CHAIN_CODE_SIZE)
        self.public_key = bytes(public_key)
        self.chain_code = bytes(chain_code)
        self.path = tuple(path)

    def __eq__(self, other) -> bool:
        if type(self) != type(other):
            return False
        return self.sec() == other.sec() and \
            self.chain_code == other.chain_code and \
            self.path == other.path

    def __hash__(self) -> int:
        return hash((self.sec(), self.chain_code, self.path))

    def __repr__(self) -> str:
        return '<%s %s>' % (self.__class__.__name__, self.sec().hex())

    def sec(self) -> bytes:
        return compress_pubkey(self.public_key)

    def child(self, index: int, suffix_prefix: Tuple[int, ...] = ()) -> ChildKey:
        """
        Derive one child.

        :param index: derivation index
        :param suffix_prefix: components before index in the reported path suffix
        :return: derived child
        """
        pub = derive_child(self.public_key, self.chain_code, index)
        return ChildKey(pubkey=pub, index=index, path_suffix=tuple(suffix_prefix) + (index,))

    def children(self, indices, suffix_prefix: Tuple[int, ...] = ()) -> List[ChildKey]:
        # InvalidChildKey is raised, not skipped
        return [self.child(i, suffix_prefix) for i in indices]

# EOF
