#
# (c) Copyright 2022 by Coinkite Inc. This file is covered by license found in COPYING-CC.
#
# Wrappers for our crypto library. AKA API Cleanup
#
# My standards:
# - pubkeys: 33 bytes compressed, but accept 65 bytes uncompressed as input
# - private key: 32 bytes
# - signature: 65 bytes recoverable (r, s, rec_id) as the device gives them
# - no DER, no PEM, no other serializations
# - message digests (for sig/verify) are already digested
#
# nice docs: <https://ofek.dev/coincurve/api/>
#
from hashlib import sha256
from ripemd.ripemd160 import ripemd160
from coincurve import PrivateKey, PublicKey

__all__ = [ 'sha256s', 'sha256d', 'hash160',
            'CT_decode_pubkey', 'CT_pubkey_point', 'CT_pubkey_tweak_add',
            'CT_priv_to_pubkey', 'CT_sign', 'CT_sig_to_pubkey' ]

def sha256s(msg):
    # single-shot SHA256
    return sha256(msg).digest()

def sha256d(msg):
    # double SHA256, used to check what the device is about to sign
    return sha256(sha256(msg).digest()).digest()

def hash160(x):
    # classic bitcoin nested hashes
    return ripemd160(sha256s(x))

def CT_decode_pubkey(pub):
    # parse compressed or uncompressed SEC encoding, return compressed form
    # - raises ValueError if not a point on the curve
    return PublicKey(bytes(pub)).format(compressed=True)

def CT_pubkey_point(pub):
    # return (x, y) as integers
    return PublicKey(bytes(pub)).point()

def CT_pubkey_tweak_add(pub, tweak):
    # pub + tweak*G, compressed
    # - raises ValueError on out of range tweak or point at infinity
    return PublicKey(bytes(pub)).add(tweak).format(compressed=True)

def CT_priv_to_pubkey(priv):
    return PrivateKey(priv).public_key.format(compressed=True)

def CT_sign(privkey, msg_digest):
    # returns 65-byte sig: r[32] s[32] rec_id[1]
    assert len(msg_digest) == 32
    return PrivateKey(privkey).sign_recoverable(msg_digest, hasher=None)

def CT_sig_to_pubkey(msg_digest, sig):
    # returns a pubkey (33 bytes)
    assert len(sig) == 65
    return PublicKey.from_signature_and_message(sig, msg_digest, hasher=None).format()

# EOF
