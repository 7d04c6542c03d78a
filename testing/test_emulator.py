#
# (c) Copyright 2022 by Coinkite Inc. This file is covered by license found in COPYING-CC.
#
# End to end against the in-process emulator: what we derive here must match
# what the device derives with private keys.
#
import pytest, threading, time

from avaxledger.constants import HARDENED, SW_WRONG_P1P2, SW_OKAY
from avaxledger.compat import sha256d, CT_sig_to_pubkey
from avaxledger.exceptions import *
from avaxledger.utils import Frame

ACCT = [44|HARDENED, 9000|HARDENED, 0|HARDENED]

def test_version(emu):
    v = emu.version()
    assert v.name == 'Avalanche'
    assert v.version == '0.5.2'
    assert v.commit == 'e8a8b5a1'

@pytest.mark.parametrize('change', [0, 1])
def test_addresses_agree(emu, app, change):
    many = emu.addresses('fuji', range(5), change_index=change)

    for i in range(5):
        one = emu.address('fuji', i, change_index=change)
        assert one.addr == many[i].addr
        assert one.short_addr == many[i].short_addr
        assert one.path_suffix == many[i].path_suffix == (change, i)

        assert many[i].pubkey == app.pubkey_at(ACCT + [change, i])

def test_xpub(emu, app):
    xp = emu.get_extended_pubkey()
    assert xp.sec() == app.pubkey_at(ACCT + [0])
    assert xp.chain_code == app.derive(ACCT + [0])[1]

@pytest.mark.parametrize('indices', [ [0], [1, 3], [[0, 0], [0, 1], [1, 0]] ])
def test_sign_hash(emu, app, indices):
    md = sha256d(b'test message')
    sigs = emu.sign_hash(md, indices)
    assert len(sigs) == len(indices)

    for idx, sig in zip(indices, sigs):
        suffix = [idx] if isinstance(idx, int) else list(idx)
        assert len(sig) == 65
        assert CT_sig_to_pubkey(md, sig) == app.pubkey_at(ACCT + suffix)

    # device is idle again
    assert app.session is None

def test_signatures_match_addresses(emu):
    md = bytes(range(32))
    keys = emu.derive_pubkeys([0, 1, 2])
    sigs = emu.sign_hash(md, [k.path_suffix for k in keys])

    assert [CT_sig_to_pubkey(md, s) for s in sigs] == [k.pubkey for k in keys]

@pytest.mark.parametrize('size', [1, 230, 231, 1000])
def test_sign_tx(emu, app, size):
    tx = bytes((i * 7) & 0xff for i in range(size))
    got = emu.sign_transaction(tx, [[0, 0], [1, 2]], change_path=[1, 0])

    assert got.hash == sha256d(tx)
    assert CT_sig_to_pubkey(got.hash, got.signatures[0]) == app.pubkey_at(ACCT + [0, 0])
    assert CT_sig_to_pubkey(got.hash, got.signatures[1]) == app.pubkey_at(ACCT + [1, 2])
    assert app.session is None

def test_lying_device(emu, app):
    app.lie_about_hash = True

    with pytest.raises(HashMismatch):
        emu.sign_hash(bytes(32), [0])
    with pytest.raises(HashMismatch):
        emu.sign_transaction(b'some tx', [0])

    # no signature was requested: only hash frame, and preamble + one chunk
    sent = [Frame.parse(a) for a in emu.tr.sent]
    assert len(sent) == 3

def test_user_rejects(emu, app):
    app.reject = True

    with pytest.raises(RejectedKeyProvide):
        emu.address('fuji', 0)
    with pytest.raises(RejectedSignature):
        emu.sign_hash(bytes(32), [0])
    with pytest.raises(RejectedSignature):
        emu.sign_transaction(b'some tx', [0])

    # xpub does not prompt
    emu.get_extended_pubkey()

    # next attempt starts clean
    app.reject = False
    assert len(emu.sign_hash(bytes(32), [0])) == 1

def test_locked(emu, app):
    app.locked = True
    with pytest.raises(DeviceLocked):
        emu.version()
    with pytest.raises(DeviceLocked):
        emu.addresses('fuji', [0])

def test_app_closed(emu, app):
    app.app_open = False
    with pytest.raises(AppNotRunning):
        emu.version()

def test_out_of_order(app):
    # signature frame without a session
    sw, _ = app.handle(Frame(0x80, 0x04, 0x81, 0, bytes.fromhex('0100000000')).serialize())
    assert sw != SW_OKAY

    sw, _ = app.handle(Frame(0x80, 0x04, 0x33, 0).serialize())
    assert sw == SW_WRONG_P1P2

def test_threads_share_session(emu, app, monkeypatch):
    # one signing exchange at a time, even with a slow link
    real = emu.tr._exchange
    def slow(apdu):
        time.sleep(0.002)
        return real(apdu)
    monkeypatch.setattr(emu.tr, '_exchange', slow)

    md = sha256d(b'threads')
    want = [app.pubkey_at(ACCT + [i]) for i in range(3)]
    errors, results = [], []

    def worker():
        try:
            for _ in range(5):
                results.append(emu.sign_hash(md, [0, 1, 2]))
        except Exception as exc:
            errors.append(exc)

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert len(results) == 4*5
    for sigs in results:
        assert [CT_sig_to_pubkey(md, s) for s in sigs] == want

@pytest.mark.device
def test_real_device(dev):
    # Ledger with the Avalanche app open
    v = dev.version()
    assert v.major >= 0

    a = dev.addresses('fuji', [0])[0]
    assert a.addr.startswith('fuji1')

# EOF
