from dataclasses import dataclass, field

import pytest

from minddigit.logic.rng import create_turn_rng
from minddigit.logic.settings import GameSettings
from minddigit.session.manager import RoomManager
from minddigit.session.store import TieredGameStore

FIXED_SEED = "ab" * 16

HOST_SECRET = "1234"
GUEST_SECRET = "5678"


@dataclass
class SeatedRoom:
    """Ids of a two-player room built through the public RoomManager API."""

    room_id: str
    host_id: str
    guest_id: str
    first_id: str | None = None
    secrets: dict[str, str] = field(default_factory=dict)  # player_id -> secret

    def other(self, player_id: str) -> str:
        return self.guest_id if player_id == self.host_id else self.host_id

    def target_of(self, player_id: str) -> str:
        """Secret that ``player_id`` is trying to crack."""
        return self.secrets[self.other(player_id)]

    @property
    def second_id(self) -> str:
        assert self.first_id is not None
        return self.other(self.first_id)


@pytest.fixture
def game_settings() -> GameSettings:
    return GameSettings()


@pytest.fixture
def store() -> TieredGameStore:
    return TieredGameStore()


@pytest.fixture
def manager(store, game_settings) -> RoomManager:
    return RoomManager(store, game_settings, rng=create_turn_rng(FIXED_SEED))


@pytest.fixture
async def seated_room(manager) -> SeatedRoom:
    """Room in DIGIT_SELECTION with Alice as host and Bob as guest."""
    host = await manager.join("Alice")
    guest = await manager.join("Bob")
    assert host.room_id == guest.room_id
    return SeatedRoom(room_id=host.room_id, host_id=host.player_id, guest_id=guest.player_id)


@pytest.fixture
async def secret_room(manager, seated_room) -> SeatedRoom:
    """Room in SECRET_SETTING with 4 agreed digits."""
    await manager.select_digit_count(seated_room.room_id, seated_room.host_id, 4)
    await manager.select_digit_count(seated_room.room_id, seated_room.guest_id, 4)
    return seated_room


@pytest.fixture
async def playing_room(manager, secret_room) -> SeatedRoom:
    """Room in PLAYING. Host's secret is 1234, guest's is 5678."""
    await manager.set_secret(secret_room.room_id, secret_room.host_id, HOST_SECRET)
    result = await manager.set_secret(secret_room.room_id, secret_room.guest_id, GUEST_SECRET)
    secret_room.first_id = result.current_turn_player_id
    secret_room.secrets = {secret_room.host_id: HOST_SECRET, secret_room.guest_id: GUEST_SECRET}
    return secret_room
