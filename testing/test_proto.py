#
# (c) Copyright 2022 by Coinkite Inc. This file is covered by license found in COPYING-CC.
#
# Exact APDUs for each operation, against canned answers.
#
import pytest

from avaxledger.constants import *
from avaxledger.compat import sha256d
from avaxledger.config import DEFAULT_CONFIG
from avaxledger.exceptions import *
from avaxledger.proto import LedgerSession, VersionInfo, SignedTransaction, \
                                DISCONNECTED, CONNECTED, READY
from avaxledger.utils import Frame, render_address

H = bytes.fromhex

# m/44'/9000'/0' as sent to the device
ACCT = H('03' '8000002c' '80002328' '80000000')

# BIP-32 test vector 1, m/0H, used as a stand-in account xpub
XPUB = H('035a784662a4a20a65bf6aab9ae98a6c068a81c52e4b032c0fb5400c706cfccc56')
XPUB_CC = H('47fdacbd0f1097043b78c63c20c34ef4ed9a111d980047ad16282c7ae6236141')
CHILD_1 = H('03501e454bf00751f24b1b489aa925215d66af2234e3891c3b21a52bedb3cd711c')

def xpub_resp(pub=XPUB, cc=XPUB_CC):
    return bytes([len(pub)]) + pub + bytes([len(cc)]) + cc

def fake_sig(n):
    return bytes([n]) * 65

def test_version(session, scripted):
    scripted.queue(bytes([0, 5, 2]) + H('e8a8b5a1') + b'\x00Avalanche')

    v = session.version()
    assert v == VersionInfo(0, 5, 2, 'e8a8b5a1', 'Avalanche')
    assert v.version == '0.5.2'
    assert scripted.sent == [H('8000000000')]

def test_version_wrong_app(session, scripted):
    scripted.queue(SW_CLA_NOT_SUPPORTED)
    with pytest.raises(AppNotRunning):
        session.version()

    scripted.queue(SW_APP_NOT_OPEN_DASHBOARD)
    with pytest.raises(AppNotRunning):
        session.version()

    scripted.queue(SW_DEVICE_LOCKED)
    with pytest.raises(DeviceLocked) as ee:
        session.version()
    assert ee.value.code == SW_DEVICE_LOCKED

def test_address(session, scripted):
    short = bytes(range(20))
    scripted.queue(short)

    a = session.address('fuji', 3)
    assert a.short_addr == short
    assert a.addr == render_address(short, 'fuji')
    assert a.path_suffix == (0, 3)

    path = H('05' '8000002c' '80002328' '80000000' '00000000' '00000003')
    assert scripted.sent == [H('80020400') + bytes([4 + len(path)]) + b'fuji' + path]

    # change index, other hrp
    scripted.queue(short)
    a = session.address('avax', 7, change_index=1)
    assert a.addr.startswith('avax1')
    fr = scripted.frames[-1]
    assert fr.p1 == 4
    assert fr.payload[4:] == H('05' '8000002c' '80002328' '80000000' '00000001' '00000007')

def test_address_rejected(session, scripted):
    scripted.queue(SW_CONDITIONS_NOT_SATISFIED)
    with pytest.raises(RejectedKeyProvide):
        session.address('fuji', 0)

    # text-only rejection
    scripted.queue(TransportError("Invalid status 6985 (Conditions of use not satisfied)"))
    with pytest.raises(RejectedKeyProvide):
        session.address('fuji', 0)

    scripted.queue(b'short')
    with pytest.raises(BadResponse):
        session.address('fuji', 0)

def test_xpub_cached(session, scripted):
    assert session.state == CONNECTED
    scripted.queue(xpub_resp())

    xp = session.get_extended_pubkey()
    assert xp.sec() == XPUB
    assert xp.chain_code == XPUB_CC
    assert xp.path == (44, 9000, 0, 0)

    assert scripted.sent == [H('8003000011') + H('04' '8000002c' '80002328' '80000000' '00000000')]
    assert session.state == READY

    # no more traffic
    assert session.get_extended_pubkey() is xp
    assert len(scripted.sent) == 1

    # other change index is fetched separately
    scripted.queue(xpub_resp())
    assert session.get_extended_pubkey(1).path == (44, 9000, 0, 1)
    assert len(scripted.sent) == 2

def test_xpub_bad(session, scripted):
    scripted.queue(xpub_resp(cc=XPUB_CC[:-1]))
    with pytest.raises(BadResponse):
        session.get_extended_pubkey()

    # right sizes, but not a point
    scripted.queue(xpub_resp(pub=b'\x04' + bytes(64)))
    with pytest.raises(BadResponse):
        session.get_extended_pubkey()

    assert session.state == CONNECTED

def test_addresses(session, scripted):
    scripted.queue(xpub_resp())

    addrs = session.addresses('fuji', [0, 1, 2])
    assert len(scripted.sent) == 1
    assert [a.path_suffix for a in addrs] == [(0, 0), (0, 1), (0, 2)]
    assert addrs[1].pubkey == CHILD_1
    assert all(a.addr.startswith('fuji1') for a in addrs)
    assert len(set(a.addr for a in addrs)) == 3

    # second batch uses the cache
    more = session.addresses('avax', range(1, 3))
    assert len(scripted.sent) == 1
    assert [a.short_addr for a in more] == [a.short_addr for a in addrs[1:]]

@pytest.mark.parametrize('indices,suffixes', [
    ([1, 3], [H('01' '00000001'), H('01' '00000003')]),
    ([[0, 1], [0, 3]], [H('02' '00000000' '00000001'), H('02' '00000000' '00000003')]),
    ([(5,)], [H('01' '00000005')]),
])
def test_sign_hash(session, scripted, indices, suffixes):
    md = bytes(range(32))
    scripted.queue(md, *[fake_sig(n) for n in range(len(indices))])

    sigs = session.sign_hash(md, indices)
    assert sigs == [fake_sig(n) for n in range(len(indices))]

    frames = scripted.frames
    assert len(frames) == 1 + len(indices)
    assert frames[0] == Frame(CLA, INS_SIGN_HASH, P1_HASH_START, 0,
                                bytes([len(indices)]) + md + ACCT)

    p1s = [f.p1 for f in frames[1:]]
    assert p1s == [P1_HASH_CONTINUE]*(len(indices)-1) + [P1_HASH_FINAL]
    assert [f.payload for f in frames[1:]] == suffixes
    assert all(f.ins == INS_SIGN_HASH for f in frames)

def test_sign_hash_mismatch(session, scripted):
    md = bytes(range(32))
    scripted.queue(bytes(32))

    with pytest.raises(HashMismatch):
        session.sign_hash(md, [0, 1])

    # stopped before asking for any signature
    assert len(scripted.sent) == 1

def test_sign_hash_rejected(session, scripted):
    md = bytes(range(32))
    scripted.queue(SW_CONDITIONS_NOT_SATISFIED)
    with pytest.raises(RejectedSignature):
        session.sign_hash(md, [0])

    # after the echo, on a signature
    scripted.queue(md, fake_sig(1), TransportError("conditions not satisfied"))
    with pytest.raises(RejectedSignature):
        session.sign_hash(md, [0, 1])
    assert len(scripted.sent) == 1 + 3

def test_sign_hash_args(session, scripted):
    with pytest.raises(ValueError):
        session.sign_hash(bytes(31), [0])
    with pytest.raises(ValueError):
        session.sign_hash(bytes(32), [])
    with pytest.raises(PathTooLong):
        session.sign_hash(bytes(32), [list(range(8))])

    # keys below the account path are never hardened
    with pytest.raises(ValueError):
        session.sign_hash(bytes(32), [0 | HARDENED])
    with pytest.raises(ValueError):
        session.sign_transaction(b'tx', [[0, 5 | HARDENED]])

    assert scripted.sent == []

def test_sign_tx_small(session, scripted):
    tx = b'hello'
    md = sha256d(tx)
    scripted.queue(b'', md, fake_sig(7))

    got = session.sign_transaction(tx, [0])
    assert got == SignedTransaction(md, [fake_sig(7)])

    assert scripted.frames == [
        Frame(CLA, INS_SIGN_TRANSACTION, P1_TX_PREAMBLE, 0, b'\x01' + ACCT),
        Frame(CLA, INS_SIGN_TRANSACTION, P1_TX_FINAL, 0, tx),
        Frame(CLA, INS_SIGN_TRANSACTION, P1_TX_SIG_FINAL, 0, H('01' '00000000')),
    ]

def test_sign_tx_chunked(session, scripted):
    tx = bytes(i & 0xff for i in range(2*MAX_CHUNK_SIZE + 40))
    md = sha256d(tx)
    # device may add more after the hash
    scripted.queue(b'', b'', b'', md + b'\x00\x01', fake_sig(1), fake_sig(2))

    got = session.sign_transaction(tx, [[0, 4], [1, 2]], change_path=[1, 5])
    assert got.hash == md
    assert got.signatures == [fake_sig(1), fake_sig(2)]

    frames = scripted.frames
    assert frames[0].p1 == P1_TX_PREAMBLE
    assert frames[0].payload == b'\x02' + ACCT \
                + H('05' '8000002c' '80002328' '80000000' '00000001' '00000005')

    chunks = frames[1:4]
    assert [f.p1 for f in chunks] == [P1_TX_CONTINUE, P1_TX_CONTINUE, P1_TX_FINAL]
    assert [f.length for f in chunks] == [MAX_CHUNK_SIZE, MAX_CHUNK_SIZE, 40]
    assert b''.join(f.payload for f in chunks) == tx

    assert [f.p1 for f in frames[4:]] == [P1_TX_SIG_CONTINUE, P1_TX_SIG_FINAL]
    assert frames[4].payload == H('02' '00000000' '00000004')

def test_sign_tx_mismatch(session, scripted):
    tx = b'x' * 300
    scripted.queue(b'', b'', sha256d(b'y' * 300))

    with pytest.raises(HashMismatch):
        session.sign_transaction(tx, [0])
    assert len(scripted.sent) == 3

    scripted.queue(b'', bytes(20))
    with pytest.raises(BadResponse):
        session.sign_transaction(b'tiny', [0])

def test_sign_tx_rejected(session, scripted):
    tx = b'hello'
    scripted.queue(b'', SW_CONDITIONS_NOT_SATISFIED)
    with pytest.raises(RejectedSignature):
        session.sign_transaction(tx, [0])
    assert len(scripted.sent) == 2

def test_sign_tx_empty(session, scripted):
    with pytest.raises(EmptyTransaction):
        session.sign_transaction(b'', [0])
    assert scripted.sent == []

def test_sign_tx_config(scripted):
    # smaller chunks, status word left on signatures, other hash
    cfg = DEFAULT_CONFIG.with_changes(max_chunk_size=2, signature_suffix_len=2,
                                        tx_digest=lambda tx: bytes(32))
    session = LedgerSession(scripted, cfg)
    scripted.queue(b'', b'', b'', bytes(32), fake_sig(3) + b'\x90\x00')

    got = session.sign_transaction(b'abcde', [9])
    assert got.signatures == [fake_sig(3)]
    assert [f.payload for f in scripted.frames[1:4]] == [b'ab', b'cd', b'e']

def test_disconnect(session, scripted):
    scripted.queue(xpub_resp())
    session.get_extended_pubkey()
    assert session.state == READY

    session.disconnect()
    assert scripted.closed
    assert session.state == DISCONNECTED

    # idempotent
    session.disconnect()
    session.close()

    with pytest.raises(NotConnected):
        session.version()
    with pytest.raises(NotConnected):
        session.get_extended_pubkey()
    with pytest.raises(NotConnected):
        session.sign_hash(bytes(32), [0])

def test_context(scripted):
    with LedgerSession(scripted) as s:
        assert 'scripted' in repr(s)
    assert scripted.closed
    assert s.state == DISCONNECTED

def test_transport_gone(session, scripted):
    scripted.queue(OSError("broken pipe"))
    with pytest.raises(TransportError):
        session.version()

    scripted.queue(OSError("No dongle found"))
    with pytest.raises(NotConnected):
        session.version()

# EOF
