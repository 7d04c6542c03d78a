#!/usr/bin/env python3
#
# (c) Copyright 2021 by Coinkite Inc. All rights reserved.
#
# Emulate the Avalanche app running on a Ledger.
#
import os, sys, struct, click, hmac, hashlib, traceback
from binascii import b2a_hex
from dataclasses import dataclass, field

from coincurve import PrivateKey

from avaxledger.constants import *
from avaxledger.compat import sha256d, hash160, CT_sign
from avaxledger.utils import Frame, decode_path, encoded_path_len, path2str

# show bytes as hex in a string
B2A = lambda x: b2a_hex(x).decode('ascii')

# Print more?
DEBUG = True

# secp256k1 group order
N = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141

# fixed default seed, so addresses are stable between runs
DEFAULT_SEED = bytes(range(16))

# provides msg+status word
class LedgerErrorCode(RuntimeError):
    def __init__(self, msg, sw):
        self.sw = sw
        super().__init__(msg)

def priv_to_pub(priv, compressed=True):
    return PrivateKey(priv).public_key.format(compressed=compressed)

def bip32_master(seed):
    # BIP-32 master key from seed: (privkey, chain_code)
    I = hmac.new(b"Bitcoin seed", seed, hashlib.sha512).digest()
    assert 0 < int.from_bytes(I[:32], 'big') < N
    return I[:32], I[32:]

def bip32_ckd_priv(priv, chain_code, index):
    # CKDpriv, hardened or not
    if index & HARDENED:
        data = b'\x00' + priv + index.to_bytes(4, 'big')
    else:
        data = priv_to_pub(priv) + index.to_bytes(4, 'big')
    I = hmac.new(chain_code, data, hashlib.sha512).digest()
    il = int.from_bytes(I[:32], 'big')
    ki = (il + int.from_bytes(priv, 'big')) % N
    if il >= N or ki == 0:
        raise LedgerErrorCode("unlucky derivation", SW_WRONG_DATA)
    return ki.to_bytes(32, 'big'), I[32:]


@dataclass
class SigningSession:
    '''
        What we remember between APDUs while signing
    '''
    kind: str                   # 'hash' or 'tx'
    remaining: int
    prefix: list
    digest: bytes = b''
    change_path: list = None
    tx: bytearray = field(default_factory=bytearray)
    uploaded: bool = False


@dataclass
class AppState:
    '''
        Whole-device state
    '''
    master_priv: bytes
    chain_code: bytes
    version: tuple = (0, 5, 2)
    commit: bytes = bytes.fromhex('e8a8b5a1')
    app_name: str = 'Avalanche'

    # knobs for tests
    app_open: bool = True
    locked: bool = False
    reject: bool = False            # user presses reject on every prompt
    lie_about_hash: bool = False    # return a different hash than we got

    session: SigningSession = None

    @classmethod
    def from_seed(cls, seed=DEFAULT_SEED, **kws):
        priv, cc = bip32_master(seed)
        return cls(master_priv=priv, chain_code=cc, **kws)

    def derive(self, path):
        # return (privkey, chain_code) at full numeric path
        if len(path) > MAX_BIP32_PATH_DEPTH:
            raise LedgerErrorCode("path too deep", SW_WRONG_DATA)
        pk, cc = self.master_priv, self.chain_code
        for comp in path:
            pk, cc = bip32_ckd_priv(pk, cc, comp)
        return pk, cc

    def pubkey_at(self, path, compressed=True):
        return priv_to_pub(self.derive(path)[0], compressed)

    def __repr__(self):
        acct = [c | HARDENED for c in ACCOUNT_PATH]
        return f'<LEDGER {self.app_name} {".".join(map(str, self.version))}: ' \
                    f'{B2A(self.pubkey_at(acct))}>'

    def _prompt(self, what):
        # user sees something on screen and may say no
        if DEBUG:
            print(f"[screen] {what}")
        if self.reject:
            raise LedgerErrorCode("user rejected", SW_CONDITIONS_NOT_SATISFIED)

    def handle(self, apdu):
        # process one APDU, return (status_word, response_data)
        try:
            try:
                fr = Frame.parse(apdu)
            except ValueError as exc:
                raise LedgerErrorCode(str(exc), SW_WRONG_LENGTH)

            if self.locked:
                raise LedgerErrorCode("device locked", SW_DEVICE_LOCKED)
            if not self.app_open or fr.cla != CLA:
                raise LedgerErrorCode("cla not supported", SW_CLA_NOT_SUPPORTED)

            method = {
                INS_VERSION: self.cmd_version,
                INS_PROMPT_PUBLIC_KEY: self.cmd_prompt_public_key,
                INS_PROMPT_EXT_PUBLIC_KEY: self.cmd_prompt_ext_public_key,
                INS_SIGN_HASH: self.cmd_sign_hash,
                INS_SIGN_TRANSACTION: self.cmd_sign_transaction,
            }.get(fr.ins)
            if not method:
                raise LedgerErrorCode("unknown ins", SW_INS_NOT_SUPPORTED)

            return SW_OKAY, bytes(method(fr))

        except LedgerErrorCode as exc:
            # any failure ends a signing session
            self.session = None
            if DEBUG:
                print(f"Error: {exc} => 0x{exc.sw:04x}")
            return exc.sw, b''
        except ValueError as exc:
            self.session = None
            if DEBUG:
                print(f"Bad data: {exc}")
            return SW_WRONG_DATA, b''

    #
    # Commands.
    #

    def cmd_version(self, fr):
        return bytes(self.version) + self.commit + b'\x00' + self.app_name.encode('ascii')

    def cmd_prompt_public_key(self, fr):
        # P1 = length of HRP, then path
        hrp = fr.payload[:fr.p1].decode('ascii')
        path = decode_path(fr.payload[fr.p1:])

        short = hash160(self.pubkey_at(path))
        self._prompt(f"Address {hrp} at {path2str(path)}: {B2A(short)}")

        return short

    def cmd_prompt_ext_public_key(self, fr):
        path = decode_path(fr.payload)
        pk, cc = self.derive(path)
        pub = priv_to_pub(pk, compressed=False)

        return bytes([len(pub)]) + pub + bytes([len(cc)]) + cc

    def _sign_next(self, fr, kind, final_p1):
        ses = self.session
        if not ses or ses.kind != kind or (kind == 'tx' and not ses.uploaded):
            raise LedgerErrorCode("no signing session", SW_CONDITIONS_NOT_SATISFIED)
        if ses.remaining <= 0:
            raise LedgerErrorCode("too many signatures", SW_WRONG_DATA)

        suffix = decode_path(fr.payload)
        path = ses.prefix + suffix
        sig = CT_sign(self.derive(path)[0], ses.digest)
        if DEBUG:
            print(f"Signed {B2A(ses.digest)} with {path2str(path)}")

        ses.remaining -= 1
        if fr.p1 == final_p1:
            self.session = None

        return sig

    def cmd_sign_hash(self, fr):
        if fr.p1 == P1_HASH_START:
            data = fr.payload
            count, digest = data[0], data[1:1+HASH_SIZE]
            if count == 0 or len(digest) != HASH_SIZE:
                raise LedgerErrorCode("bad hash request", SW_WRONG_DATA)
            prefix = decode_path(data[1+HASH_SIZE:])

            self.session = None
            self._prompt(f"Sign hash {B2A(digest)}")
            self.session = SigningSession('hash', count, prefix, digest=digest)

            if self.lie_about_hash:
                return bytes([digest[0] ^ 1]) + digest[1:]
            return digest

        if fr.p1 in (P1_HASH_CONTINUE, P1_HASH_FINAL):
            return self._sign_next(fr, 'hash', P1_HASH_FINAL)

        raise LedgerErrorCode("bad p1", SW_WRONG_P1P2)

    def cmd_sign_transaction(self, fr):
        if fr.p1 == P1_TX_PREAMBLE:
            data = fr.payload
            count = data[0]
            if count == 0:
                raise LedgerErrorCode("no signers", SW_WRONG_DATA)
            prefix = decode_path(data[1:])
            rest = data[1+encoded_path_len(data[1:]):]
            change = decode_path(rest) if rest else None

            self.session = SigningSession('tx', count, prefix, change_path=change)
            return b''

        ses = self.session
        if fr.p1 in (P1_TX_CONTINUE, P1_TX_FINAL):
            if not ses or ses.kind != 'tx' or ses.uploaded:
                raise LedgerErrorCode("no transaction upload", SW_CONDITIONS_NOT_SATISFIED)

            ses.tx.extend(fr.payload)
            if fr.p1 == P1_TX_CONTINUE:
                return b''

            ses.digest = sha256d(bytes(ses.tx))
            ses.uploaded = True
            self._prompt(f"Sign transaction {B2A(ses.digest)} ({len(ses.tx)} bytes)")

            if self.lie_about_hash:
                return bytes([ses.digest[0] ^ 1]) + ses.digest[1:]
            return ses.digest

        if fr.p1 in (P1_TX_SIG_CONTINUE, P1_TX_SIG_FINAL):
            return self._sign_next(fr, 'tx', P1_TX_SIG_FINAL)

        raise LedgerErrorCode("bad p1", SW_WRONG_P1P2)

    def emulate(self, pipename):
        # Using a unix socket as connector, run as an emulator for the device.
        import atexit, socket

        # manage unix socket cleanup for client
        def sock_cleanup():
            if os.path.exists(pipename):
                os.unlink(pipename)
        sock_cleanup()
        atexit.register(sock_cleanup)

        pipe = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)

        pipe.bind(pipename)
        pipe.listen()
        while 1:
            print(f"Waiting for new connection on: {pipename}")
            con, addr = pipe.accept()

            print(f"Connected.")

            while 1:
                hdr = recv_exactly(con, 4)
                if not hdr: break
                apdu = recv_exactly(con, struct.unpack('>I', hdr)[0])
                if apdu is None: break

                try:
                    sw, resp = self.handle(apdu)
                except BaseException as exc:
                    # shouldn't happen
                    print(f"FAILED: APDU {B2A(apdu)} => {exc}")
                    traceback.print_exc()
                    sw, resp = 0x6F00, b''

                if DEBUG:
                    print(f"{B2A(apdu)} => {B2A(resp)} {sw:04x}")

                con.sendall(struct.pack('>I', len(resp)) + resp + struct.pack('>H', sw))

            con.close()

def recv_exactly(con, count):
    rv = b''
    while len(rv) < count:
        got = con.recv(count - len(rv))
        if not got:
            return None
        rv += got
    return rv


# Options we want for all commands
@click.group()
@click.option('--quiet', '-q', is_flag=True, help='Less debugging')
def main(quiet=False):
    global DEBUG
    DEBUG = not quiet

@main.command('emulate')
@click.option('--pipe', '-p', type=str, default=EMULATOR_PIPE, help='Unix pipe for comms', metavar="PATH")
@click.option('--seed', '-s', type=str, default=B2A(DEFAULT_SEED), help='BIP-32 seed (hex)', metavar="HEX")
@click.option('--reject', '-r', is_flag=True, help='Act like the user declines everything')
def emulate_device(pipe, seed, reject=False):
    '''
        Emulate a device with the Avalanche app open.
    '''
    dev = AppState.from_seed(bytes.fromhex(seed), reject=reject)

    print(dev)

    dev.emulate(pipe)


if __name__ == '__main__':
    main()

# EOF
