"""Authorization obligations, signed fragments and the transport artifact.

A dry-run tells us which accounts must approve a call (an *obligation*).
Signing one produces a *fragment*, which can travel out-of-band as plain
base64 text and be merged into someone else's transaction later.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Union

from gauntlet.errors import DecodeError, MalformedFragment, SigningError
from gauntlet.signer import Signer, verify_signature
from gauntlet.values import (
    Address,
    I128,
    U32,
    Value,
    b64decode,
    b64encode,
    canonical_bytes,
    decode_value,
    unpack,
)

logger = logging.getLogger(__name__)

FRAGMENT_VERSION = 1
START_FUNCTION = "start_game"


def network_id(passphrase: str) -> bytes:
    return hashlib.sha256(passphrase.encode("utf-8")).digest()


@dataclass(frozen=True)
class Invocation:
    contract_id: str
    function: str
    args: tuple[Value, ...] = ()

    def to_wire(self) -> list:
        return [self.contract_id, self.function, [a.to_wire() for a in self.args]]

    @classmethod
    def from_wire(cls, wire: Any) -> "Invocation":
        if not isinstance(wire, list) or len(wire) != 3:
            raise DecodeError(f"invocation must be [contract, function, args], got {wire!r}")
        contract_id, function, args = wire
        if not isinstance(contract_id, str) or not isinstance(function, str) or not isinstance(args, list):
            raise DecodeError(f"malformed invocation {wire!r}")
        return cls(contract_id, function, tuple(decode_value(a) for a in args))

    def canonical(self) -> bytes:
        return canonical_bytes(self.to_wire())


class CredentialKind(Enum):
    SOURCE_ACCOUNT = "source_account"  # covered by the envelope signature
    ADDRESS = "address"                # needs its own signed fragment


@dataclass(frozen=True)
class AuthorizationObligation:
    kind: CredentialKind
    account: str
    nonce: int
    invocation: Invocation

    def preimage(self, passphrase: str, expiration_ledger: int) -> bytes:
        return canonical_bytes([
            "auth",
            network_id(passphrase),
            self.nonce,
            expiration_ledger,
            self.invocation.to_wire(),
        ])

    def payload(self, passphrase: str, expiration_ledger: int) -> bytes:
        return hashlib.sha256(self.preimage(passphrase, expiration_ledger)).digest()

    def to_wire(self) -> list:
        return ["obligation", self.kind.value, self.account, self.nonce, self.invocation.to_wire()]


@dataclass(frozen=True)
class SignedFragment:
    obligation: AuthorizationObligation
    expiration_ledger: int
    signature: bytes

    @property
    def account(self) -> str:
        return self.obligation.account

    @property
    def invocation(self) -> Invocation:
        return self.obligation.invocation

    def is_expired(self, current_ledger: int) -> bool:
        return current_ledger >= self.expiration_ledger

    def verify(self, passphrase: str) -> bool:
        payload = self.obligation.payload(passphrase, self.expiration_ledger)
        return verify_signature(self.account, payload, self.signature)

    def to_wire(self) -> list:
        return ["signed", self.obligation.to_wire(), self.expiration_ledger, self.signature]


AuthEntry = Union[AuthorizationObligation, SignedFragment]


def _obligation_from_wire(wire: Any) -> AuthorizationObligation:
    if not isinstance(wire, list) or len(wire) != 5 or wire[0] != "obligation":
        raise DecodeError(f"malformed obligation {wire!r}")
    _, kind, account, nonce, invocation = wire
    try:
        kind = CredentialKind(kind)
    except ValueError:
        raise DecodeError(f"unknown credential kind {kind!r}") from None
    if not isinstance(account, str) or not isinstance(nonce, int) or isinstance(nonce, bool):
        raise DecodeError(f"malformed obligation {wire!r}")
    return AuthorizationObligation(kind, account, nonce, Invocation.from_wire(invocation))


def auth_entry_from_wire(wire: Any) -> AuthEntry:
    if isinstance(wire, list) and wire and wire[0] == "obligation":
        return _obligation_from_wire(wire)
    if isinstance(wire, list) and len(wire) == 4 and wire[0] == "signed":
        _, obligation, expiration, signature = wire
        if not isinstance(expiration, int) or isinstance(expiration, bool) or not isinstance(signature, bytes):
            raise DecodeError(f"malformed signed fragment {wire!r}")
        return SignedFragment(_obligation_from_wire(obligation), expiration, signature)
    raise DecodeError(f"unknown auth entry {wire!r}")


def sign_obligation(
    obligation: AuthorizationObligation,
    signer: Signer,
    expiration_ledger: int,
    passphrase: str,
) -> SignedFragment:
    if signer.address != obligation.account:
        raise SigningError(f"signer {signer.address} cannot sign for {obligation.account}")
    payload = obligation.payload(passphrase, expiration_ledger)
    try:
        signature = signer.sign_auth_entry(payload)
    except SigningError:
        raise
    except Exception as exc:
        raise SigningError(f"signer for {obligation.account} failed: {exc}") from exc
    logger.debug("signed %s for %s until ledger %d", obligation.invocation.function, obligation.account, expiration_ledger)
    return SignedFragment(obligation, expiration_ledger, bytes(signature))


# -------- Transport artifact --------

def encode_fragment(fragment: SignedFragment) -> str:
    return b64encode(canonical_bytes(["fragment", FRAGMENT_VERSION, fragment.to_wire()]))


def decode_fragment(artifact: str) -> SignedFragment:
    if not isinstance(artifact, str) or not artifact.strip():
        raise MalformedFragment("empty transport artifact")
    try:
        wire = unpack(b64decode(artifact))
        if not isinstance(wire, list) or len(wire) != 3 or wire[0] != "fragment":
            raise DecodeError("not a fragment document")
        if wire[1] != FRAGMENT_VERSION:
            raise DecodeError(f"unsupported fragment version {wire[1]!r}")
        entry = auth_entry_from_wire(wire[2])
    except DecodeError as exc:
        raise MalformedFragment(f"cannot decode transport artifact: {exc}") from exc
    if not isinstance(entry, SignedFragment):
        raise MalformedFragment("transport artifact carries an unsigned obligation")
    return entry


@dataclass(frozen=True)
class StartTerms:
    session_id: int
    player1: str
    player1_stake: int
    player2: str
    player2_stake: int
    contract_id: str


def start_invocation(contract_id, session_id, player1, player2, stake1, stake2) -> Invocation:
    return Invocation(contract_id, START_FUNCTION, (
        U32(session_id),
        Address(player1),
        Address(player2),
        I128(stake1),
        I128(stake2),
    ))


def parse_start_terms(fragment: SignedFragment) -> StartTerms:
    """Recover the session terms the initiator signed."""
    obligation = fragment.obligation
    if obligation.kind is not CredentialKind.ADDRESS:
        raise MalformedFragment(f"unsupported credential type {obligation.kind.value!r}")
    try:
        initiator = Address(obligation.account).value
    except DecodeError as exc:
        raise MalformedFragment(f"cannot recover initiator account: {exc}") from exc

    invocation = obligation.invocation
    if invocation.function != START_FUNCTION:
        raise MalformedFragment(f'expected "{START_FUNCTION}" in fragment, got "{invocation.function}"')
    kinds = [type(a) for a in invocation.args]
    if kinds != [U32, Address, Address, I128, I128]:
        raise MalformedFragment(f"unexpected {START_FUNCTION} arguments: {[k.__name__ for k in kinds]}")

    session_id, player1, player2, stake1, stake2 = (a.value for a in invocation.args)
    if player1 != initiator:
        raise MalformedFragment("fragment is not signed by the session's player 1")
    return StartTerms(
        session_id=session_id,
        player1=player1,
        player1_stake=stake1,
        player2=player2,
        player2_stake=stake2,
        contract_id=invocation.contract_id,
    )
