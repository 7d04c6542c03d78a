#
# (c) Copyright 2022 by Coinkite Inc. This file is covered by license found in COPYING-CC.
#
# Exceptions
#
from .constants import *

class LedgerError(Exception):
    pass

class LedgerRuntimeError(LedgerError, RuntimeError):
    def __init__(self, msg, code=None, raw_msg=None):
        self.code = code
        self.raw_msg = raw_msg or msg
        super().__init__(msg)

class NotConnected(LedgerRuntimeError):
    pass

class AppNotRunning(LedgerRuntimeError):
    pass

class DeviceLocked(LedgerRuntimeError):
    pass

class UserRejected(LedgerRuntimeError):
    pass

class RejectedKeyProvide(UserRejected):
    pass

class RejectedSignature(UserRejected):
    pass

class HashMismatch(LedgerRuntimeError):
    pass

class TransportError(LedgerRuntimeError):
    # opaque failure from the transport, maybe with a status word
    pass

class BadResponse(LedgerRuntimeError):
    # device answered, but not in the layout we expect
    pass

class PathTooLong(LedgerError, ValueError):
    pass

class InvalidChildKey(LedgerError, ValueError):
    # degenerate derived key; caller should try the next index
    pass

class EmptyTransaction(LedgerError, ValueError):
    pass


# status words seen from the device or its dashboard
_SW_MAP = {
    SW_CLA_NOT_SUPPORTED: AppNotRunning,
    SW_INS_NOT_SUPPORTED: AppNotRunning,
    SW_APP_NOT_OPEN: AppNotRunning,
    SW_APP_NOT_OPEN_DASHBOARD: AppNotRunning,
    SW_DEVICE_LOCKED: DeviceLocked,
    SW_DEVICE_LOCKED_OLD: DeviceLocked,
    SW_DEVICE_LOCKED_PIN: DeviceLocked,
    SW_SECURITY_STATUS: DeviceLocked,
}

# fallback for transports that only give us text; order matters
_TEXT_MARKERS = [
    ('conditions of use not satisfied', None),
    ('conditions not satisfied', None),
    ('cla not supported', AppNotRunning),
    ('ins not supported', AppNotRunning),
    ('app does not seem to be open', AppNotRunning),
    ('locked', DeviceLocked),
    ('no dongle found', NotConnected),
    ('device not found', NotConnected),
    ('not connected', NotConnected),
]

def classify_transport_error(exc, rejected=UserRejected):
    # Promote a TransportError into something the caller can act on.
    # - status word wins if we have one
    # - "rejected" is the class to use when the user said no on-device
    msg = str(exc)
    code = getattr(exc, 'code', None)
    raw = getattr(exc, 'raw_msg', msg)

    if code is not None:
        if code == SW_CONDITIONS_NOT_SATISFIED:
            return rejected(msg, code, raw)
        cls = _SW_MAP.get(code)
        if cls:
            return cls(msg, code, raw)

    low = msg.lower()
    for marker, cls in _TEXT_MARKERS:
        if marker in low:
            return (cls or rejected)(msg, code, raw)

    if isinstance(exc, LedgerError):
        return exc

    return TransportError(msg, code, raw)

# EOF
