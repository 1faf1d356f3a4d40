import random

import pytest

from minddigit.logic.rng import SEED_BYTES, choose_first_turn, create_turn_rng, generate_seed, validate_seed_hex

FIXED_SEED = "ab" * SEED_BYTES


class TestGenerateSeed:
    def test_length_and_valid_hex(self):
        seed = generate_seed()
        assert len(seed) == SEED_BYTES * 2
        assert len(bytes.fromhex(seed)) == SEED_BYTES

    def test_uniqueness(self):
        assert generate_seed() != generate_seed()


class TestValidateSeedHex:
    def test_accepts_valid_seed(self):
        validate_seed_hex(FIXED_SEED)

    def test_accepts_short_seed(self):
        validate_seed_hex("ff")

    def test_rejects_empty(self):
        with pytest.raises(ValueError, match="must not be empty"):
            validate_seed_hex("")

    def test_rejects_non_hex_characters(self):
        with pytest.raises(ValueError, match="invalid hex"):
            validate_seed_hex("zz" + FIXED_SEED)

    def test_rejects_non_string(self):
        with pytest.raises(TypeError, match="must be a string"):
            validate_seed_hex(1234)  # type: ignore[arg-type]


class TestCreateTurnRng:
    def test_seeded_rng_is_deterministic(self):
        a = create_turn_rng(FIXED_SEED)
        b = create_turn_rng(FIXED_SEED)
        assert [a.random() for _ in range(5)] == [b.random() for _ in range(5)]

    def test_unseeded_rng(self):
        assert isinstance(create_turn_rng(), random.Random)

    def test_invalid_seed_raises(self):
        with pytest.raises(ValueError, match="invalid hex"):
            create_turn_rng("not-hex")


class TestChooseFirstTurn:
    def test_picks_one_of_the_players(self):
        rng = create_turn_rng(FIXED_SEED)
        assert choose_first_turn(["p1", "p2"], rng) in {"p1", "p2"}

    def test_both_players_can_start(self):
        rng = random.Random(0)
        picks = {choose_first_turn(["p1", "p2"], rng) for _ in range(100)}
        assert picks == {"p1", "p2"}

    def test_empty_player_list_raises(self):
        with pytest.raises(ValueError, match="without players"):
            choose_first_turn([], random.Random(0))
