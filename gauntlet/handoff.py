"""Two-phase session start without both parties online at once.

Phase A (``prepare``): player 1 dry-runs ``start_game`` with player 2 as the
source, signs only its own obligation and exports it as text.

Phase B (``finalize``): player 2 imports the text, rebuilds the same call,
slots the imported fragment in by account identity, signs what is left,
re-simulates with a fresh sequence number and submits.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import replace

from algosdk import encoding

from gauntlet.assembly import TransactionAssembler, find_obligation
from gauntlet.auth import (
    CredentialKind,
    SignedFragment,
    decode_fragment,
    encode_fragment,
    parse_start_terms,
    sign_obligation,
    start_invocation,
)
from gauntlet.config import Settings
from gauntlet.errors import (
    FragmentExpired,
    InvalidStake,
    NoObligationFound,
    ObligationMismatch,
    ProtocolError,
    ValidationError,
)
from gauntlet.ledger import Ledger
from gauntlet.poller import FinalityPoller
from gauntlet.session import SessionContext, SessionLifecycle
from gauntlet.signer import Signer
from gauntlet.values import I128_MAX, U32_MAX

logger = logging.getLogger(__name__)


def validate_terms(session_id: int, player1: str, player2: str, stake1: int, stake2: int) -> None:
    if isinstance(session_id, bool) or not isinstance(session_id, int) or not 0 <= session_id <= U32_MAX:
        raise ValidationError(f"session id must be an unsigned 32-bit integer, got {session_id!r}")
    for name, player in (("player 1", player1), ("player 2", player2)):
        if not isinstance(player, str) or not encoding.is_valid_address(player):
            raise ValidationError(f"{name} is not a valid account address: {player!r}")
    if player1 == player2:
        raise ValidationError("players must be different accounts")
    for name, stake in (("player 1", stake1), ("player 2", stake2)):
        if isinstance(stake, bool) or not isinstance(stake, int) or not 0 < stake <= I128_MAX:
            raise InvalidStake(f"{name} stake must be a positive 128-bit amount, got {stake!r}")


class HandoffCoordinator:
    def __init__(
        self,
        ledger: Ledger,
        settings: Settings,
        assembler: TransactionAssembler | None = None,
        poller: FinalityPoller | None = None,
    ):
        self.ledger = ledger
        self.settings = settings
        self.assembler = assembler or TransactionAssembler(ledger, settings)
        self.poller = poller or FinalityPoller.from_settings(ledger, settings)

    # -------- Phase A --------

    def prepare(
        self,
        session_id: int,
        player1: str,
        player2: str,
        stake1: int,
        stake2: int,
        signer1: Signer,
        ttl_minutes: float | None = None,
    ) -> SessionContext:
        validate_terms(session_id, player1, player2, stake1, stake2)
        if signer1.address != player1:
            raise ValidationError("prepare must be signed by player 1")
        context = SessionContext(session_id, player1, player2, stake1, stake2)

        invocation = start_invocation(self.assembler.contract_id, session_id, player1, player2, stake1, stake2)
        # player 1 is not the submitter, so dry-run with player 2 as the source;
        # that makes player 1's obligation an address credential we can export
        envelope = self.assembler.build(player2, invocation, sequence=0)
        sim = self.assembler.simulate(envelope)

        entry = find_obligation(sim.obligations, player1)
        if entry is None or getattr(entry, "kind", None) is not CredentialKind.ADDRESS:
            raise NoObligationFound(player1)

        expiration = self.assembler.expiration(ttl_minutes or self.settings.handoff_ttl_minutes)
        fragment = sign_obligation(entry, signer1, expiration, self.settings.network_passphrase)
        artifact = encode_fragment(fragment)
        logger.info("session %d prepared by %s, valid until ledger %d", session_id, player1[:8], expiration)
        return context.advance(
            SessionLifecycle.AWAITING_COUNTERPARTY,
            artifact=artifact,
            expiration_ledger=expiration,
        )

    # -------- Phase B --------

    def finalize(
        self,
        artifact: str,
        player2: str,
        stake2: int,
        signer2: Signer,
        cancel: threading.Event | None = None,
    ) -> SessionContext:
        fragment = decode_fragment(artifact)
        terms = parse_start_terms(fragment)
        validate_terms(terms.session_id, terms.player1, player2, terms.player1_stake, stake2)
        if signer2.address != player2:
            raise ValidationError("finalize must be signed by player 2")
        context = SessionContext(
            terms.session_id, terms.player1, player2, terms.player1_stake, stake2,
            lifecycle=SessionLifecycle.AWAITING_COUNTERPARTY,
            artifact=artifact,
            expiration_ledger=fragment.expiration_ledger,
        )

        latest = self.ledger.get_latest_ledger()
        if fragment.is_expired(latest):
            logger.warning("fragment for session %d expired at %d (now %d)",
                           terms.session_id, fragment.expiration_ledger, latest)
            raise FragmentExpired(fragment.expiration_ledger, latest, context.advance(SessionLifecycle.ABORTED))
        if terms.contract_id != self.settings.contract_id:
            raise ObligationMismatch(f"fragment targets contract {terms.contract_id}, not {self.settings.contract_id}")
        if not fragment.verify(self.settings.network_passphrase):
            raise ObligationMismatch("imported fragment signature does not verify")

        invocation = start_invocation(self.assembler.contract_id, terms.session_id,
                                      terms.player1, player2, terms.player1_stake, stake2)
        envelope = self.assembler.build(player2, invocation)
        sim = self.assembler.simulate(envelope)

        if find_obligation(sim.obligations, terms.player1) is None:
            if self.settings.dual_auth:
                # contract no longer demands player 1's approval; refuse rather than
                # start a session player 1 never authorized on-chain
                raise ProtocolError("dry-run did not require the initiator's authorization")
            fragments = {}
        else:
            fragments = {terms.player1: fragment}

        auth = self.assembler.reconcile(
            sim.obligations,
            player2,
            fragments=fragments,
            signers={player2: signer2},
            ttl_minutes=self.settings.auth_ttl_minutes,
        )

        # fresh sequence, and a dry-run with every signature attached; the
        # footprint changes once the signed nonces are in
        final = self.assembler.build(player2, invocation)
        final_sim = self.assembler.simulate(replace(final, auth=auth))
        final = self.assembler.assemble(final, final_sim, auth)
        self.assembler.verify_envelope(final)
        signed = self.assembler.sign_envelope(final, signer2)

        tx_hash = self.poller.submit(signed)
        context = context.advance(context.lifecycle, tx_hash=tx_hash)
        self.poller.wait(tx_hash, cancel).raise_for_status()
        logger.info("session %d started (%s)", terms.session_id, tx_hash)
        return context.advance(SessionLifecycle.ACTIVE)

    # -------- Single signer --------

    def start_direct(
        self,
        session_id: int,
        player1: str,
        player2: str,
        stake1: int,
        stake2: int,
        signer: Signer,
        extra_signers: dict[str, Signer] | None = None,
        cancel: threading.Event | None = None,
    ) -> SessionContext:
        """Start a session in one go when every required signer is local.

        With dual authorization on, both players' signers must be supplied.
        """
        validate_terms(session_id, player1, player2, stake1, stake2)
        if signer.address not in (player1, player2):
            raise ValidationError("the submitter must be one of the players")
        signers = {signer.address: signer, **(extra_signers or {})}
        if self.settings.dual_auth and not {player1, player2} <= set(signers):
            raise ValidationError("dual authorization needs signers for both players")

        invocation = start_invocation(self.assembler.contract_id, session_id, player1, player2, stake1, stake2)
        envelope = self.assembler.build(signer.address, invocation)
        sim = self.assembler.simulate(envelope)
        auth = self.assembler.reconcile(sim.obligations, signer.address, signers=signers)
        if any(isinstance(e, SignedFragment) for e in auth):
            sim = self.assembler.simulate(replace(envelope, auth=auth))
        final = self.assembler.assemble(envelope, sim, auth)
        self.assembler.verify_envelope(final)
        signed = self.assembler.sign_envelope(final, signer)
        finality = self.poller.submit_and_wait(signed, cancel).raise_for_status()
        return SessionContext(session_id, player1, player2, stake1, stake2,
                              lifecycle=SessionLifecycle.ACTIVE, tx_hash=finality.hash)
