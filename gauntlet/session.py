"""Two-player session records and the rules that mutate them.

The ledger is the source of truth; these types are what ``get_game`` decodes
to. The rule functions are pure and are what the contract executes.
"""

from __future__ import annotations

import hashlib
import struct
from dataclasses import dataclass, field, replace
from enum import Enum, IntEnum
from typing import Any

from algosdk import encoding

from gauntlet.errors import DecodeError, GauntletError
from gauntlet.track import MAX_LEVEL
from gauntlet.values import i128_from_parts, i128_parts

LEADERBOARD_MAX = 50


class GameMode(Enum):
    SURVIVAL = "survival"  # best survival time, only ever improved
    LEVELS = "levels"      # per-level times appended, fastest full clear wins


class SessionLifecycle(Enum):
    UNSTARTED = "unstarted"
    AWAITING_COUNTERPARTY = "awaiting_counterparty"
    ACTIVE = "active"
    COMPLETED = "completed"
    ABORTED = "aborted"


class ContractError(IntEnum):
    GAME_NOT_FOUND = 1
    NOT_PLAYER = 2
    GAME_ALREADY_ENDED = 3
    INVALID_PROOF = 4
    NOT_INITIALIZED = 5
    INVALID_LEVEL = 6
    LEVEL_NOT_UNLOCKED = 7
    SESSION_EXISTS = 8
    SAME_PLAYERS = 9
    INVALID_STAKE = 10
    NOT_ADMIN = 11


class ContractRejected(GauntletError):
    def __init__(self, error: ContractError):
        super().__init__(f"Error(Contract, #{int(error)}): {error.name}")
        self.error = error


@dataclass(frozen=True)
class PlayerProgress:
    best_time_ms: int = 0
    runs: int = 0
    levels_cleared: int = 0
    level_times: tuple[int, ...] = ()

    @property
    def finished(self) -> bool:
        return self.levels_cleared >= MAX_LEVEL

    def to_wire(self) -> list:
        return ["progress", {
            "best_time_ms": self.best_time_ms,
            "runs": self.runs,
            "levels_cleared": self.levels_cleared,
            "level_times": list(self.level_times),
        }]


@dataclass(frozen=True)
class Session:
    session_id: int
    player1: str
    player2: str
    stake1: int
    stake2: int
    mode: GameMode = GameMode.SURVIVAL
    progress1: PlayerProgress = field(default_factory=PlayerProgress)
    progress2: PlayerProgress = field(default_factory=PlayerProgress)
    winner: str | None = None
    started_at: int = 0

    @property
    def lifecycle(self) -> SessionLifecycle:
        return SessionLifecycle.COMPLETED if self.winner else SessionLifecycle.ACTIVE

    def is_player(self, player: str) -> bool:
        return player in (self.player1, self.player2)

    def progress_of(self, player: str) -> PlayerProgress:
        if player == self.player1:
            return self.progress1
        if player == self.player2:
            return self.progress2
        raise ContractRejected(ContractError.NOT_PLAYER)

    def to_wire(self) -> list:
        return ["session", {
            "id": self.session_id,
            "player1": self.player1,
            "player2": self.player2,
            "stake1": i128_parts(self.stake1),
            "stake2": i128_parts(self.stake2),
            "mode": self.mode.value,
            "progress1": self.progress1.to_wire(),
            "progress2": self.progress2.to_wire(),
            "winner": self.winner,
            "started_at": self.started_at,
        }]


@dataclass(frozen=True)
class LeaderboardEntry:
    player: str
    time_ms: int
    session_id: int
    timestamp: int

    def to_wire(self) -> list:
        return ["leaderboard_entry", {
            "player": self.player,
            "time_ms": self.time_ms,
            "session_id": self.session_id,
            "timestamp": self.timestamp,
        }]


@dataclass(frozen=True)
class SessionContext:
    """What one party knows about a session while driving the handoff."""

    session_id: int
    player1: str
    player2: str
    stake1: int
    stake2: int
    lifecycle: SessionLifecycle = SessionLifecycle.UNSTARTED
    artifact: str | None = None
    expiration_ledger: int | None = None
    tx_hash: str | None = None

    def advance(self, lifecycle: SessionLifecycle, **changes) -> "SessionContext":
        return replace(self, lifecycle=lifecycle, **changes)


# -------- Record decoding --------

def _record(wire: Any, tag: str, fields: set) -> dict:
    if not isinstance(wire, list) or len(wire) != 2 or wire[0] != tag:
        raise DecodeError(f"expected a {tag} record, got {wire!r}")
    body = wire[1]
    if not isinstance(body, dict) or set(body) != fields:
        raise DecodeError(f"{tag} record has fields {sorted(body) if isinstance(body, dict) else body!r}")
    return body


def _int(body: dict, name: str) -> int:
    v = body[name]
    if not isinstance(v, int) or isinstance(v, bool) or v < 0:
        raise DecodeError(f"{name} must be a non-negative integer, got {v!r}")
    return v


def _address(body: dict, name: str, optional: bool = False) -> str | None:
    v = body[name]
    if v is None and optional:
        return None
    if not isinstance(v, str) or not encoding.is_valid_address(v):
        raise DecodeError(f"{name} must be an account address, got {v!r}")
    return v


def decode_progress(wire: Any) -> PlayerProgress:
    body = _record(wire, "progress", {"best_time_ms", "runs", "levels_cleared", "level_times"})
    times = body["level_times"]
    if not isinstance(times, list) or not all(isinstance(t, int) and not isinstance(t, bool) for t in times):
        raise DecodeError(f"level_times must be a list of integers, got {times!r}")
    return PlayerProgress(
        best_time_ms=_int(body, "best_time_ms"),
        runs=_int(body, "runs"),
        levels_cleared=_int(body, "levels_cleared"),
        level_times=tuple(times),
    )


def decode_session(wire: Any) -> Session | None:
    if wire == ["void", None]:
        return None
    body = _record(wire, "session", {
        "id", "player1", "player2", "stake1", "stake2", "mode",
        "progress1", "progress2", "winner", "started_at",
    })
    try:
        mode = GameMode(body["mode"])
    except ValueError:
        raise DecodeError(f"unknown game mode {body['mode']!r}") from None
    return Session(
        session_id=_int(body, "id"),
        player1=_address(body, "player1"),
        player2=_address(body, "player2"),
        stake1=i128_from_parts(body["stake1"]),
        stake2=i128_from_parts(body["stake2"]),
        mode=mode,
        progress1=decode_progress(body["progress1"]),
        progress2=decode_progress(body["progress2"]),
        winner=_address(body, "winner", optional=True),
        started_at=_int(body, "started_at"),
    )


def decode_leaderboard_entry(wire: Any) -> LeaderboardEntry:
    body = _record(wire, "leaderboard_entry", {"player", "time_ms", "session_id", "timestamp"})
    return LeaderboardEntry(
        player=_address(body, "player"),
        time_ms=_int(body, "time_ms"),
        session_id=_int(body, "session_id"),
        timestamp=_int(body, "timestamp"),
    )


def decode_leaderboard(wire: Any) -> list[LeaderboardEntry]:
    if not isinstance(wire, list) or len(wire) != 2 or wire[0] != "vec" or not isinstance(wire[1], list):
        raise DecodeError(f"expected a vec of leaderboard entries, got {wire!r}")
    return [decode_leaderboard_entry(item) for item in wire[1]]


# -------- Rules --------

def open_session(session_id, player1, player2, stake1, stake2, started_at, mode=GameMode.SURVIVAL) -> Session:
    if player1 == player2:
        raise ContractRejected(ContractError.SAME_PLAYERS)
    if stake1 <= 0 or stake2 <= 0:
        raise ContractRejected(ContractError.INVALID_STAKE)
    return Session(session_id, player1, player2, stake1, stake2, mode=mode, started_at=started_at)


def _with_progress(session: Session, player: str, progress: PlayerProgress) -> Session:
    if player == session.player1:
        return replace(session, progress1=progress)
    return replace(session, progress2=progress)


def _set_winner(session: Session, winner: str) -> Session:
    if session.winner is not None:
        raise ContractRejected(ContractError.GAME_ALREADY_ENDED)
    return replace(session, winner=winner)


def record_result(session: Session, player: str, time_ms: int, level: int | None = None) -> tuple[Session, bool]:
    """Apply one run.

    Survival mode returns whether the run improved the player's best time.
    Levels mode returns whether the run decided the session.
    """
    if session.winner is not None:
        raise ContractRejected(ContractError.GAME_ALREADY_ENDED)
    progress = session.progress_of(player)

    if session.mode is GameMode.SURVIVAL:
        improved = time_ms > progress.best_time_ms
        progress = replace(progress, runs=progress.runs + 1, best_time_ms=max(progress.best_time_ms, time_ms))
        return _with_progress(session, player, progress), improved

    if level is None or not 1 <= level <= MAX_LEVEL:
        raise ContractRejected(ContractError.INVALID_LEVEL)
    if level != progress.levels_cleared + 1:
        raise ContractRejected(ContractError.LEVEL_NOT_UNLOCKED)
    times = progress.level_times + (time_ms,)
    progress = replace(
        progress,
        runs=progress.runs + 1,
        levels_cleared=level,
        level_times=times,
        best_time_ms=sum(times) if level == MAX_LEVEL else progress.best_time_ms,
    )
    session = _with_progress(session, player, progress)

    if not progress.finished:
        return session, False
    other = session.player2 if player == session.player1 else session.player1
    if not session.progress_of(other).finished:
        # first to clear every level takes it
        return _set_winner(session, player), True
    p1, p2 = session.progress1.best_time_ms, session.progress2.best_time_ms
    return _set_winner(session, session.player1 if p1 <= p2 else session.player2), True


def close_session(session: Session) -> Session:
    """Explicit end of session: decide from what has been recorded so far."""
    if session.winner is not None:
        raise ContractRejected(ContractError.GAME_ALREADY_ENDED)
    a, b = session.progress1, session.progress2
    if session.mode is GameMode.SURVIVAL:
        p1_wins = a.best_time_ms >= b.best_time_ms
    elif a.levels_cleared != b.levels_cleared:
        p1_wins = a.levels_cleared > b.levels_cleared
    else:
        p1_wins = sum(a.level_times) <= sum(b.level_times)
    return _set_winner(session, session.player1 if p1_wins else session.player2)


def winning_time(session: Session) -> int:
    progress = session.progress_of(session.winner)
    if session.mode is GameMode.SURVIVAL or progress.finished:
        return progress.best_time_ms
    return sum(progress.level_times)


def add_to_leaderboard(board, entry: LeaderboardEntry, mode: GameMode) -> tuple[LeaderboardEntry, ...]:
    # survival ranks longest first, levels ranks fastest first; earlier entries win ties
    if mode is GameMode.SURVIVAL:
        rank = [e for e in board if e.time_ms >= entry.time_ms]
        rest = [e for e in board if e.time_ms < entry.time_ms]
    else:
        rank = [e for e in board if e.time_ms <= entry.time_ms]
        rest = [e for e in board if e.time_ms > entry.time_ms]
    return tuple(rank + [entry] + rest)[:LEADERBOARD_MAX]


def course_commitment(session_id: int, player: str, level: int, time_ms: int) -> bytes:
    """SHA-256(session_id ‖ player public key ‖ level ‖ time_ms), big-endian."""
    return hashlib.sha256(
        struct.pack(">I", session_id)
        + encoding.decode_address(player)
        + struct.pack(">IQ", level, time_ms)
    ).digest()
