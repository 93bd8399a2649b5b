"""
dposgov/signing.py

Evrmore keys and message signatures for governance actions.

Accounts are Evrmore P2PKH addresses. Actions are signed with the
account's key using Evrmore message signing, and producer signing keys
are published as hex-encoded secp256k1 public keys.

Usage:
    from dposgov.signing import EvrmoreWallet, verify_message

    wallet = EvrmoreWallet.from_entropy(entropy_bytes)
    signature = wallet.sign(action.get_signing_message())
    assert verify_message(action.get_signing_message(), signature, address=wallet.address)
"""

import base64
import logging
from typing import Union, Optional

from evrmore import SelectParams
from evrmore.wallet import CEvrmoreSecret, P2PKHEvrmoreAddress
from evrmore.signmessage import signMessage, verifyMessage, EvrmoreMessage
from evrmore.core.key import CPubKey

logger = logging.getLogger("dposgov.signing")

# Compressed and uncompressed secp256k1 public key sizes
PUBKEY_SIZES = (33, 65)


class EvrmoreWallet:
    """Signing key of one governance account."""

    def __init__(self, private_key_obj: CEvrmoreSecret):
        SelectParams('mainnet')
        self._private_key = private_key_obj
        self._address_obj = P2PKHEvrmoreAddress.from_pubkey(self._private_key.pub)

    @classmethod
    def from_entropy(cls, entropy: bytes, compressed: bool = True) -> "EvrmoreWallet":
        """
        Create a wallet from 32 bytes of entropy.

        Raises:
            ValueError: If entropy is not exactly 32 bytes
        """
        SelectParams('mainnet')
        if len(entropy) != 32:
            raise ValueError("Entropy must be exactly 32 bytes")
        return cls(CEvrmoreSecret.from_secret_bytes(entropy, compressed=compressed))

    @classmethod
    def from_private_key(cls, wif: str) -> "EvrmoreWallet":
        SelectParams('mainnet')
        return cls(CEvrmoreSecret(wif))

    @property
    def address(self) -> str:
        """Account name used in governance actions."""
        return str(self._address_obj)

    @property
    def public_key(self) -> str:
        """Hex public key, usable as a producer signing key."""
        return self._private_key.pub.hex()

    def sign(self, message: str) -> str:
        """Sign `message`, returning the base64 signature as text."""
        signature = signMessage(self._private_key, EvrmoreMessage(message))
        if isinstance(signature, bytes):
            signature = signature.decode('utf-8')
        return signature


def _normalize_signature(signature: Union[bytes, str]) -> str:
    if isinstance(signature, bytes):
        try:
            return signature.decode('utf-8')
        except UnicodeDecodeError:
            return base64.b64encode(signature).decode('utf-8')
    return signature


def verify_message(
    message: str,
    signature: Union[bytes, str],
    pubkey: Optional[Union[str, bytes]] = None,
    address: Optional[str] = None,
) -> bool:
    """
    Verify an Evrmore message signature.

    Must be given a pubkey or an address (or both).
    """
    if pubkey is None and address is None:
        raise ValueError("Must provide either pubkey or address")

    if isinstance(pubkey, bytes):
        pubkey = pubkey.hex()

    return verifyMessage(
        message=EvrmoreMessage(message),
        signature=_normalize_signature(signature),
        pubkey=pubkey,
        address=address,
    )


def generate_address(pubkey: Union[bytes, str]) -> str:
    """Evrmore address (account name) of a public key."""
    SelectParams('mainnet')
    if isinstance(pubkey, str):
        pubkey = bytes.fromhex(pubkey)
    return str(P2PKHEvrmoreAddress.from_pubkey(pubkey))


def is_null_key(producer_key: str) -> bool:
    """Empty or all-zero keys are never valid producer keys."""
    if not isinstance(producer_key, str):
        return True
    stripped = producer_key.strip()
    return not stripped or set(stripped) == {"0"}


def is_valid_public_key(producer_key: str) -> bool:
    """
    Check that `producer_key` is a hex secp256k1 public key on the curve.
    """
    if is_null_key(producer_key):
        return False
    try:
        raw = bytes.fromhex(producer_key)
    except ValueError:
        return False
    if len(raw) not in PUBKEY_SIZES:
        return False
    return CPubKey(raw).is_fullyvalid
