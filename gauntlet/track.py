# gauntlet/track.py
# Seeded obstacle course. Both players and any verifier must rebuild the exact
# same course from (seed, level), so the PRNG step below is part of the format.
from __future__ import annotations

import hashlib
import struct
from dataclasses import dataclass

from gauntlet.errors import InvalidLevel

# -------- PRNG (32-bit LCG) --------
LCG_A = 1664525
LCG_C = 1013904223
LEVEL_MIX = 0xDEADBEEF
MASK32 = 0xFFFFFFFF

# -------- Geometry shared by all levels --------
TRACK_WIDTH = 740
CORRIDOR_WIDTH = 130
EDGE_PADDING = 14
OBSTACLE_DEPTH = 36
LEAD_IN = 400
RUN_OUT = 200


@dataclass(frozen=True)
class LevelParams:
    obstacle_count: int
    spacing: int
    speed: float
    corridor_width: int = CORRIDOR_WIDTH
    track_width: int = TRACK_WIDTH
    padding: int = EDGE_PADDING


# indexed by level - 1
LEVELS = (
    LevelParams(obstacle_count=7, spacing=420, speed=2.2),
    LevelParams(obstacle_count=9, spacing=340, speed=3.8),
    LevelParams(obstacle_count=13, spacing=260, speed=5.5),
)
MAX_LEVEL = len(LEVELS)


@dataclass(frozen=True)
class Obstacle:
    index: int
    position: int   # distance from start
    gap_start: int
    gap_end: int
    depth: int = OBSTACLE_DEPTH

    @property
    def gap_width(self) -> int:
        return self.gap_end - self.gap_start

    def admits(self, left: float, right: float) -> bool:
        """True if a body spanning [left, right] passes through the gap."""
        return left >= self.gap_start and right <= self.gap_end


@dataclass(frozen=True)
class TrackLayout:
    seed: int
    level: int
    obstacles: tuple[Obstacle, ...]
    length: int

    def digest(self) -> bytes:
        h = hashlib.sha256()
        h.update(struct.pack(">IIII", self.seed, self.level, len(self.obstacles), self.length))
        for o in self.obstacles:
            h.update(struct.pack(">IIIII", o.index, o.position, o.gap_start, o.gap_end, o.depth))
        return h.digest()


def level_params(level: int) -> LevelParams:
    if isinstance(level, bool) or not isinstance(level, int) or not 1 <= level <= MAX_LEVEL:
        raise InvalidLevel(level)
    return LEVELS[level - 1]


def lcg_step(state: int) -> int:
    return (state * LCG_A + LCG_C) & MASK32


def initial_state(seed: int, level: int) -> int:
    return ((seed & MASK32) ^ ((level * LEVEL_MIX) & MASK32)) & MASK32


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(value, high))


def generate_track(seed: int, level: int) -> TrackLayout:
    params = level_params(level)
    seed = seed & MASK32
    state = initial_state(seed, level)

    low = params.padding
    high = max(low, params.track_width - params.corridor_width - params.padding)
    span = high - low

    obstacles = []
    for i in range(params.obstacle_count):
        state = lcg_step(state)
        # floor(state / 2^32 * span), exact in integers
        gap_start = _clamp(low + ((state * span) >> 32), low, high)
        gap_end = min(gap_start + params.corridor_width, params.track_width)
        obstacles.append(Obstacle(
            index=i,
            position=LEAD_IN + i * params.spacing,
            gap_start=gap_start,
            gap_end=gap_end,
        ))

    length = LEAD_IN + params.obstacle_count * params.spacing + RUN_OUT
    return TrackLayout(seed=seed, level=level, obstacles=tuple(obstacles), length=length)
