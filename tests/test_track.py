import pytest

from gauntlet.errors import InvalidLevel
from gauntlet.track import (
    LEVELS,
    MAX_LEVEL,
    OBSTACLE_DEPTH,
    generate_track,
    level_params,
)

SEEDS = [0, 1, 7, 42, 2**31, 2**32 - 1, 123456789, 0xDEADBEEF]


def test_seed_42_level_1_matches_reference_course():
    layout = generate_track(42, 1)

    assert len(layout.obstacles) == 7
    assert [o.gap_start for o in layout.obstacles] == [247, 101, 176, 401, 244, 270, 80]
    assert [o.position for o in layout.obstacles] == [400 + i * 420 for i in range(7)]
    assert layout.length == 400 + 7 * 420 + 200


def test_seed_42_level_1_positions_increase_and_never_overlap():
    obstacles = generate_track(42, 1).obstacles

    for prev, nxt in zip(obstacles, obstacles[1:]):
        assert prev.position < nxt.position
        assert prev.position + prev.depth < nxt.position


@pytest.mark.parametrize("seed", SEEDS)
@pytest.mark.parametrize("level", range(1, MAX_LEVEL + 1))
def test_same_inputs_give_identical_courses(seed, level):
    first = generate_track(seed, level)
    second = generate_track(seed, level)

    assert first == second
    assert first.digest() == second.digest()


@pytest.mark.parametrize("seed", SEEDS)
@pytest.mark.parametrize("level", range(1, MAX_LEVEL + 1))
def test_every_corridor_fits_inside_the_track(seed, level):
    params = level_params(level)
    layout = generate_track(seed, level)

    assert len(layout.obstacles) == params.obstacle_count
    for o in layout.obstacles:
        assert 0 <= o.gap_start < o.gap_end <= params.track_width
        assert o.gap_width >= params.corridor_width
        assert o.depth == OBSTACLE_DEPTH


def test_level_3_first_gap_reference_value():
    assert generate_track(7, 3).obstacles[0].gap_start == 466


def test_seed_is_reduced_to_32_bits():
    assert generate_track(2**32 + 42, 1) == generate_track(42, 1)
    assert generate_track(-1, 2).seed == 2**32 - 1


def test_levels_and_seeds_change_the_course():
    assert generate_track(42, 1).digest() != generate_track(42, 2).digest()
    assert generate_track(42, 1).digest() != generate_track(43, 1).digest()


@pytest.mark.parametrize("level", [0, MAX_LEVEL + 1, -1, "1", 1.0, True])
def test_invalid_level_fails_fast(level):
    with pytest.raises(InvalidLevel):
        generate_track(42, level)


def test_obstacle_admits_body_inside_gap_only():
    o = generate_track(42, 1).obstacles[0]

    assert o.admits(o.gap_start, o.gap_start + 52)
    assert not o.admits(o.gap_start - 1, o.gap_start + 51)
    assert not o.admits(o.gap_end - 51, o.gap_end + 1)


def test_level_table_is_fixed():
    assert [p.obstacle_count for p in LEVELS] == [7, 9, 13]
    assert [p.spacing for p in LEVELS] == [420, 340, 260]
