#
# (c) Copyright 2022 by Coinkite Inc. This file is covered by license found in COPYING-CC.
#

__version__ = '0.1.0'

__all__ = [ 'proto', 'exceptions', 'transport', 'constants', 'config', 'utils', 'bip32' ]

# find connected devices
from avaxledger.transport import find_devices, find_first

# wraps a transport and speaks the Avalanche app protocol
from avaxledger.proto import LedgerSession
