"""Entry points for a game front-end.

``GameClient`` wraps the handoff, single-party calls and read queries
behind the handful of operations a UI needs.
"""

from __future__ import annotations

import logging
import threading

from gauntlet.assembly import TransactionAssembler
from gauntlet.config import Settings
from gauntlet.errors import DecodeError, ValidationError
from gauntlet.handoff import HandoffCoordinator
from gauntlet.ledger import Ledger
from gauntlet.poller import FinalityPoller
from gauntlet.session import (
    GameMode,
    LeaderboardEntry,
    Session,
    SessionContext,
    decode_leaderboard,
    decode_session,
)
from gauntlet.signer import KeypairSigner, Signer
from gauntlet.track import MAX_LEVEL, TrackLayout, generate_track
from gauntlet.values import U32_MAX, U64_MAX, Address, Bytes, U32, U64

logger = logging.getLogger(__name__)

COMMITMENT_BYTES = 32
MAX_PROOF_BYTES = 64 * 1024


class GameClient:
    def __init__(self, ledger: Ledger, settings: Settings, poller: FinalityPoller | None = None):
        self.ledger = ledger
        self.settings = settings
        self.mode = GameMode(settings.game_mode)
        self.assembler = TransactionAssembler(ledger, settings)
        self.poller = poller or FinalityPoller.from_settings(ledger, settings)
        self.handoff = HandoffCoordinator(ledger, settings, self.assembler, self.poller)
        self._read_source = settings.simulation_source

    # -------- Session start --------

    def prepare(self, session_id, player1, player2, stake1, stake2, signer1: Signer) -> str:
        return self.handoff.prepare(session_id, player1, player2, stake1, stake2, signer1).artifact

    def finalize(self, artifact: str, player2: str, stake2: int, signer2: Signer,
                 cancel: threading.Event | None = None) -> int:
        return self.handoff.finalize(artifact, player2, stake2, signer2, cancel).session_id

    def start_direct(self, session_id, player1, player2, stake1, stake2, signer: Signer,
                     extra_signers: dict[str, Signer] | None = None) -> SessionContext:
        return self.handoff.start_direct(session_id, player1, player2, stake1, stake2, signer, extra_signers)

    # -------- Results --------

    def submit_result(
        self,
        session_id: int,
        player: str,
        claimed_time: int,
        proof_bytes: bytes,
        course_commitment: bytes,
        signer: Signer,
        level: int | None = None,
        cancel: threading.Event | None = None,
    ) -> bool:
        """Record a run. Returns the contract's verdict (see ``session.record_result``)."""
        if isinstance(session_id, bool) or not isinstance(session_id, int) or not 0 <= session_id <= U32_MAX:
            raise ValidationError(f"invalid session id {session_id!r}")
        if isinstance(claimed_time, bool) or not isinstance(claimed_time, int) or not 0 <= claimed_time <= U64_MAX:
            raise ValidationError(f"claimed time must be a non-negative millisecond count, got {claimed_time!r}")
        if len(course_commitment) != COMMITMENT_BYTES:
            raise ValidationError(f"course commitment must be {COMMITMENT_BYTES} bytes, got {len(course_commitment)}")
        if len(proof_bytes) > MAX_PROOF_BYTES:
            raise ValidationError(f"proof is {len(proof_bytes)} bytes, limit is {MAX_PROOF_BYTES}")
        if signer.address != player:
            raise ValidationError("results must be signed by the player they belong to")

        if self.mode is GameMode.LEVELS:
            if level is None or not 1 <= level <= MAX_LEVEL:
                raise ValidationError(f"levels mode needs a level in 1..{MAX_LEVEL}, got {level!r}")
            invocation = self.assembler.invocation(
                "submit_level", U32(session_id), Address(player), U32(level), U64(claimed_time),
                Bytes(proof_bytes), Bytes(course_commitment))
        else:
            invocation = self.assembler.invocation(
                "submit_score", U32(session_id), Address(player), U64(claimed_time),
                Bytes(proof_bytes), Bytes(course_commitment))

        envelope = self.assembler.prepare_call(signer, invocation)
        finality = self.poller.submit_and_wait(envelope, cancel).raise_for_status()
        if not (isinstance(finality.result, list) and finality.result[:1] == ["bool"]):
            raise DecodeError(f"{invocation.function} returned {finality.result!r}, expected a bool")
        return bool(finality.result[1])

    def end_session(self, session_id: int, admin: Signer, cancel: threading.Event | None = None) -> str:
        if self.settings.admin_address and admin.address != self.settings.admin_address:
            raise ValidationError(f"{admin.address} is not the configured admin {self.settings.admin_address}")
        invocation = self.assembler.invocation("end_session", U32(session_id))
        envelope = self.assembler.prepare_call(admin, invocation)
        finality = self.poller.submit_and_wait(envelope, cancel).raise_for_status()
        result = finality.result
        if not (isinstance(result, list) and len(result) == 2 and result[0] == "address"):
            raise DecodeError(f"end_session returned {result!r}, expected an address")
        return result[1]

    # -------- Reads --------

    def _read(self, function: str, *args):
        # read-only: the source only has to be a well-formed account id
        if self._read_source is None:
            self._read_source = KeypairSigner.generate().address
        envelope = self.assembler.build(self._read_source, self.assembler.invocation(function, *args), sequence=0)
        return self.assembler.simulate(envelope).result

    def get_session(self, session_id: int) -> Session | None:
        return decode_session(self._read("get_game", U32(session_id)))

    def get_leaderboard(self) -> list[LeaderboardEntry]:
        return decode_leaderboard(self._read("get_leaderboard"))

    # -------- Course --------

    @staticmethod
    def generate_track(seed: int, level: int) -> TrackLayout:
        return generate_track(seed, level)
