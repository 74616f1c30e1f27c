# gauntlet/signer.py
# Local Ed25519 signers. Wallets that hold keys elsewhere only need to
# satisfy the Signer protocol.
from __future__ import annotations

import base64
import logging
import os
from typing import Protocol

from algosdk import account, mnemonic, util

from gauntlet.errors import SigningError

logger = logging.getLogger(__name__)


class Signer(Protocol):
    address: str

    def sign_auth_entry(self, payload: bytes) -> bytes:
        """Sign an authorization payload and return the raw signature."""

    def sign_transaction(self, tx_hash: bytes) -> bytes:
        """Sign a transaction hash and return the raw signature."""


class KeypairSigner:
    def __init__(self, private_key: str):
        try:
            self.address = account.address_from_private_key(private_key)
        except Exception as exc:
            raise SigningError(f"unusable private key: {exc}") from exc
        self._private_key = private_key

    @classmethod
    def generate(cls) -> "KeypairSigner":
        private_key, _ = account.generate_account()
        return cls(private_key)

    @classmethod
    def from_mnemonic(cls, words: str) -> "KeypairSigner":
        try:
            return cls(mnemonic.to_private_key(words))
        except SigningError:
            raise
        except Exception as exc:
            raise SigningError(f"invalid mnemonic: {exc}") from exc

    def mnemonic(self) -> str:
        return mnemonic.from_private_key(self._private_key)

    def _sign(self, data: bytes) -> bytes:
        return base64.b64decode(util.sign_bytes(data, self._private_key))

    def sign_auth_entry(self, payload: bytes) -> bytes:
        return self._sign(payload)

    def sign_transaction(self, tx_hash: bytes) -> bytes:
        return self._sign(tx_hash)

    def __repr__(self) -> str:
        return f"KeypairSigner({self.address[:8]}…)"


def verify_signature(address: str, payload: bytes, signature: bytes) -> bool:
    try:
        return util.verify_bytes(payload, base64.b64encode(signature).decode(), address)
    except Exception:
        logger.debug("signature check raised for %s", address, exc_info=True)
        return False


def load_dev_signers() -> dict[int, KeypairSigner]:
    """Dev wallets for players 1 and 2, from GAUNTLET_DEV_PLAYER{n}_MNEMONIC."""
    signers = {}
    for player in (1, 2):
        words = os.getenv(f"GAUNTLET_DEV_PLAYER{player}_MNEMONIC", "")
        if not words or words == "NOT_AVAILABLE":
            continue
        signers[player] = KeypairSigner.from_mnemonic(words)
        logger.info("dev wallet player %d: %s", player, signers[player].address)
    return signers
