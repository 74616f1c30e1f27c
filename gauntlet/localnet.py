# gauntlet/localnet.py
# In-process ledger running the session contract. Used for development and
# for the test-suite in place of a LocalNet node; it implements the same
# Ledger protocol (and JSON-RPC surface) as a remote node.
from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from typing import Any, Callable

from algosdk import account

from gauntlet.auth import (
    AuthorizationObligation,
    CredentialKind,
    Invocation,
    SignedFragment,
)
from gauntlet.config import DEFAULT_NETWORK_PASSPHRASE
from gauntlet.envelope import Footprint, TransactionEnvelope
from gauntlet.errors import AccountNotFound, GauntletError
from gauntlet.ledger import (
    AccountState,
    SimulationResult,
    SubmitResponse,
    SubmitStatus,
    TransactionInfo,
    TransactionStatus,
)
from gauntlet.session import (
    ContractError,
    ContractRejected,
    GameMode,
    LeaderboardEntry,
    add_to_leaderboard,
    close_session,
    open_session,
    record_result,
    winning_time,
)
from gauntlet.signer import verify_signature
from gauntlet.values import Address, Bytes, I128, U32, U64

logger = logging.getLogger(__name__)

LEDGER_CLOSE_SECONDS = 5
BASE_RESOURCE_FEE = 1000
FEE_PER_KEY = 100
COMMITMENT_BYTES = 32

Verifier = Callable[[bytes, bytes, bytes], bool]


def accept_all(proof: bytes, image_id: bytes, commitment: bytes) -> bool:
    return True


class HostError(GauntletError):
    pass


@dataclass
class _Trace:
    auth: list[str]
    reads: set[str] = field(default_factory=set)
    writes: set[str] = field(default_factory=set)
    result: Any = ("void", None)
    commit: Callable[[], None] | None = None

    def result_wire(self) -> list:
        return list(self.result)


def _args(invocation: Invocation, *types) -> list:
    args = invocation.args
    if [type(a) for a in args] != list(types):
        raise HostError(f"{invocation.function}: invalid arguments {[type(a).__name__ for a in args]}")
    return [a.value for a in args]


class LocalNet:
    def __init__(
        self,
        network_passphrase: str = DEFAULT_NETWORK_PASSPHRASE,
        contract_id: str | None = None,
        admin: str | None = None,
        mode: GameMode = GameMode.SURVIVAL,
        dual_auth: bool = True,
        verifier: Verifier = accept_all,
        image_id: bytes = bytes(32),
        not_found_polls: int = 0,
        start_ledger: int = 1000,
        seed: int | None = None,
    ):
        self.network_passphrase = network_passphrase
        self.contract_id = contract_id or account.generate_account()[1]
        self.admin = admin
        self.mode = mode
        self.dual_auth = dual_auth
        self.verifier = verifier
        self.image_id = image_id
        self.not_found_polls = not_found_polls
        self.ledger = start_ledger
        self.timestamp = 1_700_000_000
        self.accounts: dict[str, int] = {}
        self.sessions = {}
        self.leaderboard: tuple[LeaderboardEntry, ...] = ()
        self.used_nonces: set[tuple[str, int]] = set()
        self.applied: list[TransactionEnvelope] = []
        self._pending: dict[str, dict] = {}
        self._results: dict[str, TransactionInfo] = {}
        self._rng = random.Random(seed)

    # -------- Test/dev controls --------

    def fund(self, address: str, sequence: int = 0) -> None:
        self.accounts.setdefault(address, sequence)

    def close_ledger(self, count: int = 1) -> int:
        self.ledger += count
        self.timestamp += count * LEDGER_CLOSE_SECONDS
        return self.ledger

    # -------- Ledger protocol --------

    def get_account(self, account_id: str) -> AccountState:
        if account_id not in self.accounts:
            raise AccountNotFound(account_id)
        return AccountState(account_id, self.accounts[account_id])

    def get_latest_ledger(self) -> int:
        return self.ledger

    def simulate(self, envelope: TransactionEnvelope) -> SimulationResult:
        try:
            trace = self._execute(envelope.source, envelope.invocation)
        except ContractRejected as exc:
            return SimulationResult((), Footprint(), None, 0, self.ledger, str(exc), int(exc.error))
        except HostError as exc:
            return SimulationResult((), Footprint(), None, 0, self.ledger, f"HostError: {exc}")

        if envelope.auth:
            obligations = tuple(envelope.auth)
        else:
            obligations = tuple(self._record_auth(envelope.source, a, envelope.invocation) for a in trace.auth)
        read_write = set(trace.writes) | self._nonce_keys(obligations)
        footprint = Footprint(tuple(sorted(trace.reads - read_write)), tuple(sorted(read_write)))
        fee = BASE_RESOURCE_FEE + FEE_PER_KEY * (len(footprint.read_only) + len(footprint.read_write))
        return SimulationResult(obligations, footprint, trace.result_wire(), fee, self.ledger)

    def submit(self, envelope: TransactionEnvelope) -> SubmitResponse:
        tx_hash = envelope.hash(self.network_passphrase)
        if tx_hash in self._pending or tx_hash in self._results:
            return SubmitResponse(tx_hash, SubmitStatus.DUPLICATE, self.ledger)
        error = self._precheck(envelope, tx_hash)
        if error:
            logger.info("refused %s: %s", tx_hash, error)
            return SubmitResponse(tx_hash, SubmitStatus.ERROR, self.ledger, error)
        self._pending[tx_hash] = {"envelope": envelope, "polls": 0}
        return SubmitResponse(tx_hash, SubmitStatus.PENDING, self.ledger)

    def get_transaction(self, tx_hash: str) -> TransactionInfo:
        if tx_hash in self._results:
            return self._results[tx_hash]
        pending = self._pending.get(tx_hash)
        if pending is None or pending["polls"] < self.not_found_polls:
            if pending is not None:
                pending["polls"] += 1
            return TransactionInfo(tx_hash, TransactionStatus.NOT_FOUND)
        del self._pending[tx_hash]
        self.close_ledger()
        info = self._apply(pending["envelope"], tx_hash)
        self._results[tx_hash] = info
        return info

    # -------- Internals --------

    def _record_auth(self, source: str, address: str, invocation: Invocation) -> AuthorizationObligation:
        kind = CredentialKind.SOURCE_ACCOUNT if address == source else CredentialKind.ADDRESS
        nonce = self._rng.randrange(-(2**63), 2**63)
        return AuthorizationObligation(kind, address, nonce, invocation)

    @staticmethod
    def _nonce_keys(entries) -> set[str]:
        keys = set()
        for entry in entries:
            ob = entry.obligation if isinstance(entry, SignedFragment) else entry
            if ob.kind is CredentialKind.ADDRESS:
                keys.add(f"nonce:{ob.account}:{ob.nonce}")
        return keys

    def _precheck(self, envelope: TransactionEnvelope, tx_hash: str) -> str | None:
        if envelope.source not in self.accounts:
            return "txNoAccount"
        if envelope.sequence != self.accounts[envelope.source] + 1:
            return "txBadSeq"
        digest = envelope.hash_bytes(self.network_passphrase)
        signed = any(
            address == envelope.source and verify_signature(address, digest, sig)
            for address, sig in envelope.signatures
        )
        if not signed:
            return "txBadAuth"
        return None

    def _apply(self, envelope: TransactionEnvelope, tx_hash: str) -> TransactionInfo:
        if envelope.sequence != self.accounts.get(envelope.source, -1) + 1:
            return TransactionInfo(tx_hash, TransactionStatus.FAILED, diagnostic="txBadSeq", ledger=self.ledger)
        # included: the sequence number is spent whatever happens next
        self.accounts[envelope.source] = envelope.sequence
        self.applied.append(envelope)
        try:
            trace = self._execute(envelope.source, envelope.invocation)
            self._enforce_auth(envelope, trace)
            touched = trace.reads | trace.writes | self._nonce_keys(envelope.auth)
            if envelope.footprint is None or not envelope.footprint.covers(touched):
                raise HostError("Error(Storage, ExceededLimit): footprint does not cover accessed keys")
        except (ContractRejected, HostError) as exc:
            logger.info("%s failed: %s", tx_hash, exc)
            return TransactionInfo(tx_hash, TransactionStatus.FAILED, diagnostic=str(exc), ledger=self.ledger)

        for key in self._nonce_keys(envelope.auth):
            _, address, nonce = key.split(":")
            self.used_nonces.add((address, int(nonce)))
        if trace.commit:
            trace.commit()
        return TransactionInfo(tx_hash, TransactionStatus.SUCCESS, trace.result_wire(), ledger=self.ledger)

    def _enforce_auth(self, envelope: TransactionEnvelope, trace: _Trace) -> None:
        body = envelope.invocation.canonical()
        for address in trace.auth:
            entry = next(
                (e for e in envelope.auth
                 if (e.obligation if isinstance(e, SignedFragment) else e).account == address),
                None,
            )
            if entry is None:
                raise HostError(f"Error(Auth, InvalidAction): missing authorization for {address}")
            ob = entry.obligation if isinstance(entry, SignedFragment) else entry
            if ob.invocation.canonical() != body:
                raise HostError(f"Error(Auth, InvalidAction): authorized invocation differs for {address}")
            if ob.kind is CredentialKind.SOURCE_ACCOUNT:
                if address != envelope.source:
                    raise HostError("Error(Auth, InvalidAction): source credential for non-source account")
                continue
            if not isinstance(entry, SignedFragment):
                raise HostError(f"Error(Auth, InvalidAction): unsigned entry for {address}")
            if self.ledger > entry.expiration_ledger:
                raise HostError(f"Error(Auth, InvalidAction): signature for {address} expired")
            if (address, ob.nonce) in self.used_nonces:
                raise HostError(f"Error(Auth, ExistingValue): nonce already used by {address}")
            if not entry.verify(self.network_passphrase):
                raise HostError(f"Error(Auth, InvalidAction): bad signature for {address}")

    # -------- Contract --------

    def _execute(self, source: str, invocation: Invocation) -> _Trace:
        if invocation.contract_id != self.contract_id:
            raise HostError(f"contract {invocation.contract_id} not found")
        handler = getattr(self, f"_fn_{invocation.function}", None)
        if handler is None:
            raise HostError(f"unknown function {invocation.function!r}")
        trace = handler(source, invocation)
        trace.reads.add(f"contract:{self.contract_id}")
        return trace

    def _session_key(self, session_id: int) -> str:
        return f"session:{session_id}"

    def _load(self, session_id: int):
        session = self.sessions.get(session_id)
        if session is None:
            raise ContractRejected(ContractError.GAME_NOT_FOUND)
        return session

    def _fn_start_game(self, source: str, invocation: Invocation) -> _Trace:
        session_id, player1, player2, stake1, stake2 = _args(invocation, U32, Address, Address, I128, I128)
        if self.dual_auth:
            required = [player1, player2]
        else:
            required = [source if source in (player1, player2) else player1]
        if session_id in self.sessions:
            raise ContractRejected(ContractError.SESSION_EXISTS)
        session = open_session(session_id, player1, player2, stake1, stake2, self.timestamp, self.mode)

        def commit():
            self.sessions[session_id] = session

        key = self._session_key(session_id)
        return _Trace(auth=required, writes={key}, commit=commit)

    def _submit(self, source, session_id, player, time_ms, proof, commitment, level=None) -> _Trace:
        session = self._load(session_id)
        if not session.is_player(player):
            raise ContractRejected(ContractError.NOT_PLAYER)
        if len(commitment) != COMMITMENT_BYTES:
            raise ContractRejected(ContractError.INVALID_PROOF)
        # empty proof is the dev-mode path: the verifier is not consulted
        if proof and not self.verifier(proof, self.image_id, commitment):
            raise ContractRejected(ContractError.INVALID_PROOF)

        updated, flag = record_result(session, player, time_ms, level)
        writes = {self._session_key(session_id)}
        board = self.leaderboard
        if updated.winner is not None:
            entry = LeaderboardEntry(updated.winner, winning_time(updated), session_id, self.timestamp)
            board = add_to_leaderboard(board, entry, updated.mode)
            writes.add("leaderboard")

        def commit():
            self.sessions[session_id] = updated
            self.leaderboard = board

        return _Trace(auth=[player], writes=writes, result=("bool", flag), commit=commit)

    def _fn_submit_score(self, source: str, invocation: Invocation) -> _Trace:
        session_id, player, time_ms, proof, commitment = _args(invocation, U32, Address, U64, Bytes, Bytes)
        return self._submit(source, session_id, player, time_ms, proof, commitment)

    def _fn_submit_level(self, source: str, invocation: Invocation) -> _Trace:
        session_id, player, level, time_ms, proof, commitment = _args(
            invocation, U32, Address, U32, U64, Bytes, Bytes)
        return self._submit(source, session_id, player, time_ms, proof, commitment, level)

    def _fn_end_session(self, source: str, invocation: Invocation) -> _Trace:
        (session_id,) = _args(invocation, U32)
        if self.admin is None:
            raise ContractRejected(ContractError.NOT_INITIALIZED)
        session = close_session(self._load(session_id))
        entry = LeaderboardEntry(session.winner, winning_time(session), session_id, self.timestamp)
        board = add_to_leaderboard(self.leaderboard, entry, session.mode)

        def commit():
            self.sessions[session_id] = session
            self.leaderboard = board

        return _Trace(
            auth=[self.admin],
            writes={self._session_key(session_id), "leaderboard"},
            result=("address", session.winner),
            commit=commit,
        )

    def _fn_get_game(self, source: str, invocation: Invocation) -> _Trace:
        (session_id,) = _args(invocation, U32)
        session = self.sessions.get(session_id)
        result = session.to_wire() if session else ("void", None)
        return _Trace(auth=[], reads={self._session_key(session_id)}, result=result)

    def _fn_get_leaderboard(self, source: str, invocation: Invocation) -> _Trace:
        _args(invocation)
        return _Trace(auth=[], reads={"leaderboard"}, result=("vec", [e.to_wire() for e in self.leaderboard]))

    # -------- JSON-RPC surface --------

    def rpc(self, body: dict) -> dict:
        """Answer one JSON-RPC 2.0 request the way a ledger node would."""
        request_id = body.get("id")
        params = body.get("params") or {}
        method = body.get("method")
        try:
            if method == "getHealth":
                result = {"status": "healthy"}
            elif method == "getLatestLedger":
                result = {"sequence": self.ledger}
            elif method == "getAccount":
                acct = self.accounts.get(params["address"])
                result = None if acct is None else {"id": params["address"], "sequence": str(acct)}
            elif method == "simulateTransaction":
                result = self.simulate(TransactionEnvelope.from_base64(params["transaction"])).to_json()
            elif method == "sendTransaction":
                result = self.submit(TransactionEnvelope.from_base64(params["transaction"])).to_json()
            elif method == "getTransaction":
                result = self.get_transaction(params["hash"]).to_json()
            else:
                return {"jsonrpc": "2.0", "id": request_id,
                        "error": {"code": -32601, "message": f"method not found: {method}"}}
        except (KeyError, GauntletError) as exc:
            return {"jsonrpc": "2.0", "id": request_id, "error": {"code": -32602, "message": str(exc)}}
        return {"jsonrpc": "2.0", "id": request_id, "result": result}
