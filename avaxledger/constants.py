#
# (c) Copyright 2022 by Coinkite Inc. This file is covered by license found in COPYING-CC.
#
# System constants.
#

# APDU CLA for the Avalanche app, all commands
CLA = 0x80

# APDU INS codes
INS_VERSION = 0x00
INS_PROMPT_PUBLIC_KEY = 0x02
INS_PROMPT_EXT_PUBLIC_KEY = 0x03
INS_SIGN_HASH = 0x04
INS_SIGN_TRANSACTION = 0x05

# P1 values for hash signing
# - first frame carries the hash, then one frame per key to sign with
P1_HASH_START = 0x00
P1_HASH_CONTINUE = 0x01
P1_HASH_FINAL = 0x81

# P1 values for transaction signing
# - preamble, then transaction chunks, then one frame per key
P1_TX_PREAMBLE = 0x00
P1_TX_CONTINUE = 0x01
P1_TX_FINAL = 0x81
P1_TX_SIG_CONTINUE = 0x02
P1_TX_SIG_FINAL = 0x82

# BIP-44 account prefix: m/44'/9000'/0'
ACCOUNT_PATH = (44, 9000, 0)
ACCOUNT_HARDEN_COUNT = 3

# high bit set in BE32 indicating hardened BIP-32 path component
HARDENED = 0x8000_0000

# path lengths (depth) is limited to 10 components by the app
MAX_BIP32_PATH_DEPTH = 10

# one byte length field in APDU, app accepts a bit less than that
MAX_APDU_DATA = 255
MAX_CHUNK_SIZE = 230

# sizes
HASH_SIZE = 32
CHAIN_CODE_SIZE = 32
SHORT_ADDR_SIZE = 20

# Correct APDU response from all commands: 90 00
SW_OKAY = 0x9000

# status words we know how to explain
SW_CONDITIONS_NOT_SATISFIED = 0x6985
SW_SECURITY_STATUS = 0x6982
SW_DEVICE_LOCKED = 0x5515
SW_DEVICE_LOCKED_OLD = 0x6804
SW_DEVICE_LOCKED_PIN = 0x6B0C
SW_WRONG_LENGTH = 0x6700
SW_WRONG_DATA = 0x6A80
SW_WRONG_P1P2 = 0x6B00
SW_INS_NOT_SUPPORTED = 0x6D00
SW_CLA_NOT_SUPPORTED = 0x6E00
SW_APP_NOT_OPEN = 0x6E01
SW_APP_NOT_OPEN_DASHBOARD = 0x6511

# emulator listens here by default
EMULATOR_PIPE = '/tmp/ledger-avax-pipe'

# EOF
