# gauntlet/errors.py
# Error taxonomy. Every error says what happened on-chain, so callers can tell
# "nothing happened" from "something happened" from "we don't know".
from __future__ import annotations

from enum import Enum


class ChainEffect(Enum):
    NONE = "none"          # nothing reached the ledger
    APPLIED = "applied"    # included on-chain, but not with the wanted outcome
    UNKNOWN = "unknown"    # submitted, fate not observed


class GauntletError(Exception):
    chain_effect = ChainEffect.NONE


# -------- Validation --------

class ValidationError(GauntletError, ValueError):
    pass


class InvalidLevel(ValidationError):
    def __init__(self, level):
        super().__init__(f"invalid level {level!r}")
        self.level = level


class InvalidStake(ValidationError):
    pass


# -------- Protocol --------

class ProtocolError(GauntletError):
    pass


class NoObligationFound(ProtocolError):
    def __init__(self, account: str):
        super().__init__(
            f"dry-run returned no authorization obligation for {account[:8]}…; "
            "check the contract id and that the ledger is reachable"
        )
        self.account = account


class MalformedFragment(ProtocolError):
    pass


class ObligationMismatch(ProtocolError):
    pass


class MissingSignature(ProtocolError):
    def __init__(self, account: str):
        super().__init__(f"no fragment or local signer for {account}")
        self.account = account


class DecodeError(ProtocolError):
    pass


# -------- Signing --------

class SigningError(GauntletError):
    pass


# -------- Network / transient --------

class TransientError(GauntletError):
    pass


class RpcError(TransientError):
    def __init__(self, message: str, code: int | None = None):
        super().__init__(message if code is None else f"[{code}] {message}")
        self.code = code


class AccountNotFound(TransientError):
    def __init__(self, account: str):
        super().__init__(f"account not found: {account}")
        self.account = account


# -------- Ledger outcomes --------

class SimulationFailed(GauntletError):
    """The dry-run rejected the call; nothing was submitted."""

    def __init__(self, function: str, diagnostic: str, code: int | None = None):
        super().__init__(f'simulation error in "{function}": {diagnostic}')
        self.function = function
        self.diagnostic = diagnostic
        self.code = code


class LedgerRejected(GauntletError):
    def __init__(self, tx_hash: str | None, diagnostic: str, chain_effect: ChainEffect = ChainEffect.NONE):
        super().__init__(f"transaction {tx_hash or '<unsent>'} rejected: {diagnostic}")
        self.tx_hash = tx_hash
        self.diagnostic = diagnostic
        self.chain_effect = chain_effect


class TransactionTimedOut(GauntletError):
    chain_effect = ChainEffect.UNKNOWN

    def __init__(self, tx_hash: str, attempts: int):
        super().__init__(f"transaction {tx_hash} not final after {attempts} polls; outcome unknown")
        self.tx_hash = tx_hash
        self.attempts = attempts


class PollCancelled(GauntletError):
    chain_effect = ChainEffect.UNKNOWN

    def __init__(self, tx_hash: str):
        super().__init__(f"stopped watching {tx_hash}; the transaction may still land")
        self.tx_hash = tx_hash


class FragmentExpired(GauntletError):
    def __init__(self, expiration_ledger: int, current_ledger: int, context=None):
        super().__init__(
            f"signed fragment expired at ledger {expiration_ledger} (network is at {current_ledger}); "
            "the initiator must prepare a new one"
        )
        self.expiration_ledger = expiration_ledger
        self.current_ledger = current_ledger
        self.context = context
