#
# (c) Copyright 2022 by Coinkite Inc. This file is covered by license found in COPYING-CC.
#
# proto.py
#
# Implement the higher-level protocol for the Avalanche app on a Ledger.
#
#
import logging
import threading
from typing import List, NamedTuple, Optional, Sequence

from .bip32 import ExtendedPublicKey, ChildKey
from .config import AppConfig, DEFAULT_CONFIG
from .constants import *
from .exceptions import *
from .utils import *

logger = logging.getLogger(__name__)

# session states
DISCONNECTED = 'disconnected'
CONNECTED = 'connected'
READY = 'ready'


class VersionInfo(NamedTuple):
    major: int
    minor: int
    patch: int
    commit: str
    name: str

    @property
    def version(self):
        return '%d.%d.%d' % (self.major, self.minor, self.patch)


class Address(NamedTuple):
    addr: str
    short_addr: bytes
    path_suffix: tuple
    pubkey: Optional[bytes] = None


class SignedTransaction(NamedTuple):
    hash: bytes
    signatures: List[bytes]


class LedgerSession:
    #
    # Protocol/wrapper for the device. Call methods on this instance to get work done.
    #
    # One APDU in flight at a time: every method that talks to the device
    # holds self._lock until its whole exchange sequence is done.
    #
    def __init__(self, transport, config: AppConfig = DEFAULT_CONFIG):
        self.tr = transport
        self.config = config
        self._lock = threading.RLock()
        self._xpubs = {}

    def __repr__(self):
        tr = getattr(self, 'tr', None)
        return '<%s via %s: %s>' % (self.__class__.__name__,
                                        tr.name if tr else '-', self.state)

    def __enter__(self):
        return self

    def __exit__(self, *unused):
        self.disconnect()

    @property
    def state(self):
        if getattr(self, 'tr', None) is None:
            return DISCONNECTED
        return READY if self._xpubs else CONNECTED

    def disconnect(self):
        # release the transport; safe to call again
        with self._lock:
            tr = getattr(self, 'tr', None)
            if tr is None:
                return
            self.tr = None
            self._xpubs.clear()
            tr.close()

    close = disconnect

    #
    # Framing
    #
    def _frame(self, ins, p1=0, p2=0, payload=b''):
        return Frame(self.config.cla, ins, p1, p2, bytes(payload))

    def send(self, frame, rejected=UserRejected):
        # Send one frame, return response data.
        # - transport errors are promoted to our taxonomy
        # - caller must hold the lock if part of a multi-frame exchange
        tr = getattr(self, 'tr', None)
        if tr is None:
            raise NotConnected("Session is disconnected")

        try:
            return tr.exchange(frame.serialize())
        except (LedgerError, OSError) as exc:
            err = classify_transport_error(exc, rejected)
            if err is exc:
                raise
            raise err from exc

    def _path(self, suffix=(), harden_count=None):
        # account prefix + suffix, encoded
        cfg = self.config
        if harden_count is None:
            harden_count = cfg.harden_count
        return encode_path(cfg.account_path + tuple(suffix), harden_count,
                                max_depth=cfg.max_path_depth)

    def _suffix(self, index):
        # signing index: plain int means one-element suffix
        rv = (index,) if isinstance(index, int) else tuple(index)
        if not none_hardened(rv):
            raise ValueError("Hardened components not allowed below the account path")
        return rv

    def _strip_sig(self, sig):
        n = self.config.signature_suffix_len
        sig = bytes(sig)
        if n:
            if len(sig) <= n:
                raise BadResponse("Signature response too short: %d bytes" % len(sig))
            sig = sig[:-n]
        return sig

    #
    # Operations
    #
    def version(self) -> VersionInfo:
        # Which app version is running. Fails if a different app is open.
        with self._lock:
            resp = self.send(self._frame(self.config.ins_version))

        return VersionInfo(*parse_version(resp))

    def address(self, hrp: str, address_index: int, change_index: int = 0) -> Address:
        # Ask device for the address at m/44'/9000'/0'/change/index; it shows
        # the address to the user before answering.
        # - P1 is length of HRP, so the device can find the path after it
        cfg = self.config
        hrp_bytes = hrp.encode('ascii')
        if len(hrp_bytes) > 0xff:
            raise ValueError("HRP too long")

        suffix = (change_index, address_index)
        payload = hrp_bytes + self._path(suffix)

        with self._lock:
            resp = self.send(self._frame(cfg.ins_prompt_public_key, p1=len(hrp_bytes),
                                                        payload=payload),
                                rejected=RejectedKeyProvide)

        if len(resp) != SHORT_ADDR_SIZE:
            raise BadResponse("Expected %d byte address, got %d" % (SHORT_ADDR_SIZE, len(resp)))

        short = bytes(resp)
        return Address(render_address(short, hrp), short, suffix)

    def get_extended_pubkey(self, change_index: int = 0) -> ExtendedPublicKey:
        # XPUB for m/44'/9000'/0'/change, fetched once then cached
        with self._lock:
            rv = self._xpubs.get(change_index)
            if rv is not None:
                return rv

            suffix = (change_index,)
            resp = self.send(self._frame(self.config.ins_prompt_ext_public_key,
                                                payload=self._path(suffix)),
                                rejected=RejectedKeyProvide)

            pubkey, chain_code = parse_extended_pubkey(resp)
            try:
                rv = ExtendedPublicKey(pubkey, chain_code, self.config.account_path + suffix)
                rv.sec()
            except ValueError as exc:
                raise BadResponse("Device gave invalid extended public key: %s" % exc)

            logger.debug("Cached xpub for change=%d: %s", change_index, B2A(rv.sec()))
            self._xpubs[change_index] = rv

            return rv

    def derive_pubkeys(self, indices: Sequence[int], change_index: int = 0) -> List[ChildKey]:
        # host-side derivation only, after the one round trip for the xpub
        xpub = self.get_extended_pubkey(change_index)
        return xpub.children(indices, suffix_prefix=(change_index,))

    def addresses(self, hrp: str, indices: Sequence[int], change_index: int = 0) -> List[Address]:
        rv = []
        for ck in self.derive_pubkeys(indices, change_index):
            short = pubkey_to_short_addr(ck.pubkey)
            rv.append(Address(render_address(short, hrp), short, ck.path_suffix, ck.pubkey))
        return rv

    def _collect_signatures(self, ins, p1_continue, p1_final, indices):
        # One frame per signing path, P1 tells device if more are coming.
        # - caller holds the lock
        rv = []
        last = len(indices) - 1
        for n, idx in enumerate(indices):
            suffix = self._suffix(idx)
            p1 = p1_final if n == last else p1_continue
            payload = encode_path(suffix, 0, max_depth=self.config.max_path_depth)

            sig = self.send(self._frame(ins, p1=p1, payload=payload),
                                rejected=RejectedSignature)
            sig = self._strip_sig(sig)

            logger.debug("%s signed: %s", path2str(self._full_path(suffix)), B2A(sig))
            rv.append(sig)

        return rv

    def _full_path(self, suffix):
        cfg = self.config
        return [(c | HARDENED) if n < cfg.harden_count else c
                        for n, c in enumerate(cfg.account_path + tuple(suffix))]

    def _check_indices(self, indices):
        indices = list(indices)
        if not indices:
            raise ValueError("Need at least one signing index")
        if len(indices) > 0xff:
            raise ValueError("Too many signing indices")
        for idx in indices:
            suffix = self._suffix(idx)
            encode_path(suffix, 0, max_depth=self.config.max_path_depth - len(self.config.account_path))
        return indices

    def sign_hash(self, digest: bytes, indices) -> List[bytes]:
        """
        Sign 32 bytes digest with each key m/44'/9000'/0'/<suffix>.

        Device echoes the hash back first; a different answer means the channel
        or device is lying, and we stop before asking for any signature.

        Returns signatures in the same order as indices.
        """
        cfg = self.config
        digest = bytes(digest)
        if len(digest) != HASH_SIZE:
            raise ValueError("Digest must be exactly 32 bytes")
        indices = self._check_indices(indices)

        payload = bytes([len(indices)]) + digest + self._path()

        with self._lock:
            logger.debug("Signing hash: %s", B2A(digest))
            resp = self.send(self._frame(cfg.ins_sign_hash, p1=cfg.p1_hash_start,
                                                    payload=payload),
                                rejected=RejectedSignature)
            if bytes(resp) != digest:
                logger.warning("Device returned hash %s for %s", B2A(resp), B2A(digest))
                raise HashMismatch("Returned hash %s does not match requested %s"
                                        % (B2A(resp), B2A(digest)))

            return self._collect_signatures(cfg.ins_sign_hash, cfg.p1_hash_continue,
                                                cfg.p1_hash_final, indices)

    def sign_transaction(self, tx: bytes, indices, change_path: Optional[Sequence[int]] = None
                            ) -> SignedTransaction:
        """
        Upload a serialized transaction, check the device hashed what we sent,
        then collect one signature per index.

        change_path, if given, is a suffix like [1, 5] so the device can
        recognise our own change output.

        Any failure aborts the whole thing; retry from the start.
        """
        cfg = self.config
        tx = bytes(tx)
        if not tx:
            raise EmptyTransaction("Transaction is empty")
        indices = self._check_indices(indices)

        preamble = bytes([len(indices)]) + self._path()
        if change_path is not None:
            preamble += self._path(change_path)

        chunks = list(chunk_payload(tx, cfg.max_chunk_size))
        expect = cfg.tx_digest(tx)

        with self._lock:
            logger.debug("Signing %d byte transaction in %d chunks", len(tx), len(chunks))

            self.send(self._frame(cfg.ins_sign_transaction, p1=cfg.p1_tx_preamble,
                                            payload=preamble),
                        rejected=RejectedSignature)

            resp = b''
            for is_last, chunk in chunks:
                p1 = cfg.p1_tx_final if is_last else cfg.p1_tx_continue
                resp = self.send(self._frame(cfg.ins_sign_transaction, p1=p1, payload=chunk),
                                    rejected=RejectedSignature)

            if len(resp) < HASH_SIZE:
                raise BadResponse("Transaction hash response too short: %d bytes" % len(resp))

            got = bytes(resp[0:HASH_SIZE])
            if got != expect:
                logger.warning("Device hashed transaction as %s, expected %s",
                                    B2A(got), B2A(expect))
                raise HashMismatch("Returned hash %s does not match transaction hash %s"
                                        % (B2A(got), B2A(expect)))

            sigs = self._collect_signatures(cfg.ins_sign_transaction, cfg.p1_tx_sig_continue,
                                                cfg.p1_tx_sig_final, indices)

        return SignedTransaction(got, sigs)

# EOF
