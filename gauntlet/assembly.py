# gauntlet/assembly.py
# Build -> dry-run -> reconcile auth -> assemble -> verify -> sign.
# Shared by both handoff phases and by single-party calls.
from __future__ import annotations

import logging
from dataclasses import replace
from typing import Mapping

from gauntlet.auth import (
    AuthEntry,
    AuthorizationObligation,
    CredentialKind,
    Invocation,
    SignedFragment,
    sign_obligation,
)
from gauntlet.config import Settings, expiration_ledger
from gauntlet.envelope import TransactionEnvelope
from gauntlet.errors import (
    MissingSignature,
    ObligationMismatch,
    SigningError,
    SimulationFailed,
    ValidationError,
)
from gauntlet.ledger import Ledger, SimulationResult
from gauntlet.signer import Signer

logger = logging.getLogger(__name__)


def _obligation_of(entry: AuthEntry) -> AuthorizationObligation:
    return entry.obligation if isinstance(entry, SignedFragment) else entry


def find_obligation(entries, account: str) -> AuthEntry | None:
    """Entry bound to ``account``. Position in the list is never a key."""
    for entry in entries:
        if _obligation_of(entry).account == account:
            return entry
    return None


def check_matches(obligation: AuthorizationObligation, fragment: SignedFragment) -> None:
    if fragment.account != obligation.account:
        raise ObligationMismatch(f"fragment signed by {fragment.account}, obligation names {obligation.account}")
    if fragment.invocation.canonical() != obligation.invocation.canonical():
        raise ObligationMismatch(
            f"fragment from {fragment.account[:8]}… approves different {obligation.invocation.function} arguments"
        )


class TransactionAssembler:
    def __init__(self, ledger: Ledger, settings: Settings):
        self.ledger = ledger
        self.settings = settings

    @property
    def passphrase(self) -> str:
        return self.settings.network_passphrase

    @property
    def contract_id(self) -> str:
        if not self.settings.contract_id:
            raise ValidationError("GAUNTLET_CONTRACT_ID is not set; deploy the contract and export its id")
        return self.settings.contract_id

    def invocation(self, function: str, *args) -> Invocation:
        return Invocation(self.contract_id, function, tuple(args))

    def build(self, source: str, invocation: Invocation, sequence: int | None = None) -> TransactionEnvelope:
        # sequence numbers are single-use; read right before building
        if sequence is None:
            sequence = self.ledger.get_account(source).sequence + 1
        return TransactionEnvelope(
            source=source,
            sequence=sequence,
            fee=self.settings.base_fee,
            invocation=invocation,
            timeout_seconds=self.settings.tx_timeout_seconds,
        )

    def simulate(self, envelope: TransactionEnvelope) -> SimulationResult:
        sim = self.ledger.simulate(envelope)
        if sim.error is not None:
            raise SimulationFailed(envelope.invocation.function, sim.error, sim.error_code)
        logger.debug(
            "dry-run %s: %d obligations, %d footprint keys",
            envelope.invocation.function,
            len(sim.obligations),
            len(sim.footprint.read_only) + len(sim.footprint.read_write),
        )
        return sim

    def expiration(self, ttl_minutes: float) -> int:
        return expiration_ledger(self.ledger.get_latest_ledger(), ttl_minutes, self.settings.ledgers_per_minute)

    def reconcile(
        self,
        obligations,
        source: str,
        fragments: Mapping[str, SignedFragment] | None = None,
        signers: Mapping[str, Signer] | None = None,
        ttl_minutes: float | None = None,
    ) -> tuple[AuthEntry, ...]:
        fragments = fragments or {}
        signers = signers or {}
        expiration = None
        entries = []
        for entry in obligations:
            obligation = _obligation_of(entry)
            account = obligation.account
            if obligation.kind is CredentialKind.SOURCE_ACCOUNT:
                if account != source:
                    raise ObligationMismatch(f"source-account credential names {account}, source is {source}")
                entries.append(obligation)
            elif account in fragments:
                check_matches(obligation, fragments[account])
                entries.append(fragments[account])
            elif account in signers:
                if expiration is None:
                    expiration = self.expiration(ttl_minutes or self.settings.auth_ttl_minutes)
                entries.append(sign_obligation(obligation, signers[account], expiration, self.passphrase))
            else:
                raise MissingSignature(account)
        return tuple(entries)

    def assemble(self, envelope: TransactionEnvelope, sim: SimulationResult, auth) -> TransactionEnvelope:
        """Attach auth plus the footprint of ``sim``, which must be the last dry-run."""
        return replace(
            envelope,
            auth=tuple(auth),
            footprint=sim.footprint,
            resource_fee=sim.min_resource_fee,
            signatures=(),
        )

    def verify_envelope(self, envelope: TransactionEnvelope) -> None:
        """Refuse to submit anything whose auth does not match its body."""
        body = envelope.invocation.canonical()
        seen = set()
        for entry in envelope.auth:
            obligation = _obligation_of(entry)
            if obligation.invocation.canonical() != body:
                raise ObligationMismatch(
                    f"auth for {obligation.account[:8]}… covers {obligation.invocation.function}"
                    f" with different arguments than the transaction body"
                )
            if obligation.account in seen:
                raise ObligationMismatch(f"duplicate auth entry for {obligation.account}")
            seen.add(obligation.account)
            if obligation.kind is CredentialKind.SOURCE_ACCOUNT:
                if obligation.account != envelope.source:
                    raise ObligationMismatch("source-account credential does not name the source")
                continue
            if not isinstance(entry, SignedFragment):
                raise MissingSignature(obligation.account)
            if not entry.verify(self.passphrase):
                raise ObligationMismatch(f"signature from {obligation.account[:8]}… does not verify")

    def sign_envelope(self, envelope: TransactionEnvelope, signer: Signer) -> TransactionEnvelope:
        if signer.address != envelope.source:
            raise SigningError(f"signer {signer.address} is not the source {envelope.source}")
        try:
            signature = signer.sign_transaction(envelope.hash_bytes(self.passphrase))
        except SigningError:
            raise
        except Exception as exc:
            raise SigningError(f"transaction signer failed: {exc}") from exc
        return envelope.with_signature(signer.address, signature)

    def prepare_call(self, signer: Signer, invocation: Invocation, ttl_minutes: float | None = None) -> TransactionEnvelope:
        """Single-party call: every obligation is signed by ``signer``."""
        envelope = self.build(signer.address, invocation)
        sim = self.simulate(envelope)
        auth = self.reconcile(sim.obligations, signer.address, signers={signer.address: signer}, ttl_minutes=ttl_minutes)
        if any(isinstance(e, SignedFragment) for e in auth):
            # address credentials add nonce keys; dry-run again with them attached
            sim = self.simulate(replace(envelope, auth=auth))
        envelope = self.assemble(envelope, sim, auth)
        self.verify_envelope(envelope)
        return self.sign_envelope(envelope, signer)
