#
# (c) Copyright 2022 by Coinkite Inc. This file is covered by license found in COPYING-CC.
#
import pytest

from avaxledger.constants import SW_OKAY
from avaxledger.transport import LedgerTransportABC
from avaxledger.proto import LedgerSession
from avaxledger.utils import Frame

def pytest_addoption(parser):
    parser.addoption("--device", action="store_true",
                     default=False, help="also test against a real Ledger")

def pytest_collection_modifyitems(config, items):
    if config.getoption("--device"):
        return
    skip = pytest.mark.skip(reason="need --device to run")
    for item in items:
        if "device" in item.keywords:
            item.add_marker(skip)


class ScriptedTransport(LedgerTransportABC):
    #
    # Replays canned answers and remembers what was sent.
    # - answer is bytes (success), int (status word), or an exception to raise
    #
    name = 'scripted'

    def __init__(self, *answers):
        self.sent = []
        self.answers = list(answers)
        self.closed = False

    def queue(self, *answers):
        self.answers.extend(answers)

    @property
    def frames(self):
        return [Frame.parse(a) for a in self.sent]

    def close(self):
        self.closed = True

    def _exchange(self, apdu):
        self.sent.append(apdu)
        if not self.answers:
            raise AssertionError("unexpected APDU: " + apdu.hex())

        ans = self.answers.pop(0)
        if isinstance(ans, Exception):
            raise ans
        if isinstance(ans, int):
            return ans, b''
        return SW_OKAY, bytes(ans)


class EmulatorTransport(LedgerTransportABC):
    # In-process emulator, no socket needed
    name = 'in-process'
    is_emulator = True

    def __init__(self, app):
        self.app = app
        self.sent = []

    def _exchange(self, apdu):
        self.sent.append(apdu)
        return self.app.handle(apdu)


@pytest.fixture
def scripted():
    return ScriptedTransport()

@pytest.fixture
def session(scripted):
    return LedgerSession(scripted)

@pytest.fixture
def app():
    from emulator import ledger_app
    ledger_app.DEBUG = False
    return ledger_app.AppState.from_seed()

@pytest.fixture
def emu_transport(app):
    return EmulatorTransport(app)

@pytest.fixture
def emu(emu_transport):
    return LedgerSession(emu_transport)

@pytest.fixture(scope='session')
def dev():
    # a real device, or the emulator if one is running
    from avaxledger.transport import find_devices

    for tr in find_devices():
        return LedgerSession(tr)
    else:
        raise pytest.fail('no device / emulator found')

# EOF
