# (c) Copyright 2021 by Coinkite Inc. This file is covered by license found in COPYING-CC.
#
# transport.py
#
# Implement the desktop to device connection: USB HID via ledgerblue, or a
# socket for the emulator (and other APDU servers using the same framing).
#
import os, socket, struct, logging
from .utils import B2A
from .constants import *
from .exceptions import TransportError, NotConnected

logger = logging.getLogger(__name__)

def find_devices():
    #
    # Search for emulator, then USB, and yield a transport for each device found.
    #
    # - generator function.
    #
    # emulation running on a Unix socket
    sim = LedgerSocketTransport.find_simulator()
    if sim:
        yield sim

    # USB; not installed on offline-only hosts
    from ledgerblue.comm import getDongle
    from ledgerblue.commException import CommException

    try:
        dongle = getDongle(False)
    except CommException as exc:
        logger.debug("No USB device: %s", exc)
        return

    yield LedgerHIDTransport(dongle)

def find_first():
    # operate on the first device we can find
    for d in find_devices():
        return d

    return None

class LedgerTransportABC:
    #
    # Abstract base class. Low level details about talking to the device.
    #
    name = 'abstract'
    is_emulator = False

    def _exchange(self, apdu):
        # round-trip the APDU, return (status_word, response_data)
        raise NotImplementedError

    def close(self):
        # release resources
        pass

    def exchange(self, apdu):
        # Send APDU bytes, get response data back, or raise with status word.
        logger.debug(">> %s", B2A(apdu))

        stat_word, resp = self._exchange(bytes(apdu))

        logger.debug("<< %s %04x", B2A(resp), stat_word)

        if stat_word != SW_OKAY:
            msg = "Got error SW value: 0x%04x" % stat_word
            raise TransportError(msg, stat_word)

        return resp

class LedgerHIDTransport(LedgerTransportABC):
    #
    # For talking to a real device over USB.
    #
    name = 'HID'

    def __init__(self, dongle):
        # if you don't have a dongle, use find_devices instead
        self._dongle = dongle

    def close(self):
        # release resources
        self._dongle.close()
        del self._dongle

    def _exchange(self, apdu):
        from ledgerblue.commException import CommException

        if not hasattr(self, '_dongle'):
            raise NotConnected("Transport already closed")

        # ledgerblue strips the status word on success, raises on anything else
        try:
            resp = self._dongle.exchange(apdu)
        except CommException as exc:
            if exc.sw is None:
                raise TransportError(str(exc.message))
            return exc.sw, bytes(exc.data or b'')

        return SW_OKAY, bytes(resp)

class LedgerSocketTransport(LedgerTransportABC):
    #
    # Emulation running over a socket. Address is a Unix socket path
    # or (host, port) for TCP.
    #
    # Framing: BE32 length + APDU out; BE32 length + data + SW16 back.
    #
    is_emulator = True

    @classmethod
    def find_simulator(cls):
        fn = os.environ.get('AVAXLEDGER_EMULATOR', EMULATOR_PIPE)
        if os.path.exists(fn):
            return cls(fn)
        return None

    def __init__(self, address):
        if isinstance(address, str):
            self.sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
            self.name = 'emulator'
        else:
            self.sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
            self.name = 'tcp'
        self.sock.connect(address)

    def close(self):
        self.sock.close()
        del self.sock

    def _recv_exactly(self, count):
        rv = b''
        while len(rv) < count:
            got = self.sock.recv(count - len(rv))
            if not got:
                # closed socket causes this
                raise TransportError("Emulator went away?")
            rv += got
        return rv

    def _exchange(self, apdu):
        if not hasattr(self, 'sock'):
            raise NotConnected("Transport already closed")

        self.sock.sendall(struct.pack('>I', len(apdu)) + apdu)

        ln, = struct.unpack('>I', self._recv_exactly(4))
        resp = self._recv_exactly(ln + 2)

        return struct.unpack('>H', resp[-2:])[0], resp[:-2]

# EOF
