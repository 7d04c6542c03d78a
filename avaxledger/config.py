#
# (c) Copyright 2022 by Coinkite Inc. This file is covered by license found in COPYING-CC.
#
# config.py
#
# Per-app protocol parameters. Immutable; give a different one to LedgerSession
# to talk to another app build that uses other codes or paths.
#
import dataclasses
from dataclasses import dataclass
from typing import Callable, Tuple

from .constants import *
from .compat import sha256d


@dataclass(frozen=True)
class AppConfig:
    cla: int = CLA

    ins_version: int = INS_VERSION
    ins_prompt_public_key: int = INS_PROMPT_PUBLIC_KEY
    ins_prompt_ext_public_key: int = INS_PROMPT_EXT_PUBLIC_KEY
    ins_sign_hash: int = INS_SIGN_HASH
    ins_sign_transaction: int = INS_SIGN_TRANSACTION

    p1_hash_start: int = P1_HASH_START
    p1_hash_continue: int = P1_HASH_CONTINUE
    p1_hash_final: int = P1_HASH_FINAL

    p1_tx_preamble: int = P1_TX_PREAMBLE
    p1_tx_continue: int = P1_TX_CONTINUE
    p1_tx_final: int = P1_TX_FINAL
    p1_tx_sig_continue: int = P1_TX_SIG_CONTINUE
    p1_tx_sig_final: int = P1_TX_SIG_FINAL

    account_path: Tuple[int, ...] = ACCOUNT_PATH
    harden_count: int = ACCOUNT_HARDEN_COUNT
    max_path_depth: int = MAX_BIP32_PATH_DEPTH
    max_chunk_size: int = MAX_CHUNK_SIZE

    # some firmware leaves the status word on the end of each signature
    signature_suffix_len: int = 0

    # how we hash the transaction to compare with the device's answer
    tx_digest: Callable[[bytes], bytes] = sha256d

    def __post_init__(self):
        object.__setattr__(self, 'account_path', tuple(self.account_path))

        if not (1 <= self.max_chunk_size <= MAX_APDU_DATA):
            raise ValueError(f"Chunk size must be 1..{MAX_APDU_DATA}")
        if not (0 <= self.harden_count <= len(self.account_path)):
            raise ValueError("Cannot harden more components than the account path has")
        if len(self.account_path) + 2 > self.max_path_depth:
            raise ValueError("Account path leaves no room for change/index")
        if self.signature_suffix_len < 0:
            raise ValueError("Negative signature suffix")

    def with_changes(self, **kws) -> 'AppConfig':
        return dataclasses.replace(self, **kws)


DEFAULT_CONFIG = AppConfig()

# EOF
