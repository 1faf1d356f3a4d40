"""Room lifecycle: matchmaking, phase transitions, turns, win detection and recovery."""

from __future__ import annotations

import asyncio
import weakref
from typing import TYPE_CHECKING
from uuid import uuid4

import structlog

from minddigit.logic.codes import generate_room_code, generate_secret, normalize_player_name, validate_code
from minddigit.logic.enums import DigitCountPolicy, FinishReason, RoomPhase
from minddigit.logic.exceptions import (
    ConflictError,
    InvalidInputError,
    InvalidStateError,
    NotFoundError,
    NotYourTurnError,
    OpponentNotReadyError,
)
from minddigit.logic.rng import choose_first_turn, create_turn_rng
from minddigit.logic.scoring import score
from minddigit.logic.settings import NUM_PLAYERS, GameSettings
from minddigit.logic.state import GuessRecord, Player, Room, utc_now
from minddigit.logic.state_check import repair_room, validate_room
from minddigit.session.types import (
    GuessResult,
    HistoryEntryView,
    HistoryView,
    JoinResult,
    OpponentSecret,
    PhaseResult,
    PlayerView,
    RoomSnapshot,
    SuggestedSecret,
)

if TYPE_CHECKING:
    import random
    from collections.abc import Callable

    from minddigit.session.store import TieredGameStore

logger = structlog.get_logger()

PLACEHOLDER_NAME_PREFIX = "Player-"
_PLACEHOLDER_ID_CHARS = 6


class RoomManager:
    """Manage room lifecycle against a TieredGameStore.

    Every operation is one read-mutate-write of a single room record, run
    under an asyncio.Lock keyed by room id so two requests for the same room
    (two racing guesses, a guess and a leave) cannot lose updates. ``join``
    additionally holds a matchmaking lock so two joiners cannot claim the
    same waiting room.

    Rooms are repaired on load: a phase label that disagrees with the
    player data is recomputed before any transition rule runs. A room the
    store no longer knows is recreated in WAITING (recovery-on-read).
    """

    def __init__(
        self,
        store: TieredGameStore,
        settings: GameSettings | None = None,
        *,
        rng: random.Random | None = None,
        room_code_factory: Callable[[], str] = generate_room_code,
    ) -> None:
        self._store = store
        self._settings = settings or GameSettings()
        self._rng = rng or create_turn_rng()
        self._room_code_factory = room_code_factory
        # room_id -> Lock; an entry disappears once no request holds or awaits it
        self._room_locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()
        self._matchmaking_lock = asyncio.Lock()

    @property
    def settings(self) -> GameSettings:
        return self._settings

    @property
    def store(self) -> TieredGameStore:
        return self._store

    def _get_room_lock(self, room_id: str) -> asyncio.Lock:
        lock = self._room_locks.get(room_id)
        if lock is None:
            lock = asyncio.Lock()
            self._room_locks[room_id] = lock
        return lock

    # --- Public API ---

    async def join(self, player_name: str) -> JoinResult:
        """Seat a player in the oldest waiting room, or create a new room."""
        name = normalize_player_name(player_name)
        player_id = str(uuid4())

        async with self._matchmaking_lock:
            for room_id in await self._waiting_room_ids():
                async with self._get_room_lock(room_id):
                    room = await self._store.get_room(room_id)
                    if room is None or not self._is_joinable(room):
                        continue
                    player = self._seat_player(room, player_id, name)
                    room.phase = RoomPhase.DIGIT_SELECTION
                    await self._save(room)
                    logger.info("player joined room", room_id=room.id, player_id=player_id, position=player.position)
                    return JoinResult(room_id=room.id, player_id=player_id, position=player.position, phase=room.phase)

            room_id = await self._allocate_room_id()
            async with self._get_room_lock(room_id):
                room = Room(id=room_id)
                player = self._seat_player(room, player_id, name)
                await self._save(room)
        logger.info("room created", room_id=room_id, player_id=player_id)
        return JoinResult(room_id=room_id, player_id=player_id, position=player.position, phase=room.phase)

    async def select_digit_count(self, room_id: str, player_id: str, count: int) -> PhaseResult:
        """Record a player's digit-count choice; resolve it once both players chose."""
        async with self._get_room_lock(room_id):
            room = await self._load_room(room_id, player_id)
            player = self._require_player(room, player_id)

            if room.phase != RoomPhase.DIGIT_SELECTION:
                if player.selected_digit_count == count and room.phase != RoomPhase.WAITING:
                    return self._phase_result(room)  # replayed request
                raise InvalidStateError(
                    "Digit count can only be selected during DIGIT_SELECTION",
                    phase=room.phase.value,
                )
            self._validate_digit_count(count)

            opponent = room.opponent_of(player_id)
            if (
                self._settings.digit_count_policy == DigitCountPolicy.REQUIRE_MATCH
                and opponent is not None
                and opponent.selected_digit_count is not None
                and opponent.selected_digit_count != count
            ):
                raise InvalidInputError(
                    "Both players must select the same digit count",
                    phase=room.phase.value,
                    opponent_digits=opponent.selected_digit_count,
                )

            player.selected_digit_count = count
            if len(room.players_with_digits) == NUM_PLAYERS:
                room.agreed_digit_count = self._resolve_digit_count(room)
                self._change_phase(room, RoomPhase.SECRET_SETTING)
            await self._save(room)
            return self._phase_result(room)

    async def set_secret(self, room_id: str, player_id: str, secret: str) -> PhaseResult:
        """Store a player's secret; start play once both players are ready."""
        async with self._get_room_lock(room_id):
            room = await self._load_room(room_id, player_id)
            player = self._require_player(room, player_id)

            if room.phase != RoomPhase.SECRET_SETTING:
                if player.secret is not None and player.secret == secret:
                    return self._phase_result(room)  # replayed request
                raise InvalidStateError(
                    "Secret can only be set during SECRET_SETTING",
                    phase=room.phase.value,
                )

            digit_count = self._required_digits(room)
            validate_code(
                secret,
                digit_count,
                allow_duplicates=self._settings.allows_duplicates(digit_count),
                label="secret",
            )

            player.secret = secret
            player.is_ready = True
            if len(room.players_with_secrets) == NUM_PLAYERS:
                room.current_turn_player_id = choose_first_turn([p.id for p in room.players], self._rng)
                self._change_phase(room, RoomPhase.PLAYING)
                logger.info("first turn assigned", room_id=room.id, player_id=room.current_turn_player_id)
            await self._save(room)
            return self._phase_result(room)

    async def guess(self, room_id: str, player_id: str, guess: str) -> GuessResult:
        """Score a guess against the opponent's secret and advance the turn."""
        async with self._get_room_lock(room_id):
            room = await self._load_room(room_id, player_id)
            player = self._require_player(room, player_id)

            replayed = self._replayed_guess(room, player_id, guess)
            if replayed is not None:
                return self._guess_result(room, replayed)

            if room.phase != RoomPhase.PLAYING:
                raise InvalidStateError("Game is not in playing state", phase=room.phase.value)

            # the first guess is accepted from either side
            turn = room.current_turn_player_id
            if turn is not None and turn != player_id and room.history:
                raise NotYourTurnError("Not your turn", current_turn_player_id=turn)

            digit_count = self._required_digits(room)
            validate_code(
                guess,
                digit_count,
                allow_duplicates=self._settings.allows_duplicates(digit_count),
                label="guess",
            )

            opponent = room.opponent_of(player_id)
            if opponent is None or not opponent.secret or len(opponent.secret) != digit_count:
                raise OpponentNotReadyError("Opponent has not set a secret yet", phase=room.phase.value)

            result = score(guess, opponent.secret)
            record = GuessRecord(
                player_id=player.id,
                player_name=player.name,
                guess=guess,
                bulls=result.bulls,
                cows=result.cows,
                turn_index=len(room.history) + 1,
            )
            room.history.append(record)
            player.guess_history.append(record)

            if result.is_win_for(digit_count):
                room.winner_id = player.id
                room.finish_reason = FinishReason.SOLVED
                room.current_turn_player_id = None
                self._change_phase(room, RoomPhase.FINISHED)
                logger.info("game won", room_id=room.id, player_id=player.id, guesses=len(room.history))
            else:
                room.current_turn_player_id = opponent.id

            await self._save(room)
            return self._guess_result(room, record)

    async def leave(self, room_id: str, player_id: str) -> PhaseResult:
        """Disconnect a player; finish the room when at most one player remains."""
        async with self._get_room_lock(room_id):
            room = await self._load_room(room_id, player_id)
            player = self._require_player(room, player_id)
            if not player.is_connected:
                return self._phase_result(room)

            player.is_connected = False
            connected = room.connected_players
            logger.info("player left room", room_id=room.id, player_id=player_id, remaining=len(connected))

            if len(connected) <= 1 and room.phase != RoomPhase.FINISHED:
                room.current_turn_player_id = None
                if len(connected) == 1 and room.winner_id is None:
                    room.winner_id = connected[0].id
                    room.finish_reason = FinishReason.OPPONENT_LEFT
                else:
                    room.finish_reason = FinishReason.ABANDONED
                self._change_phase(room, RoomPhase.FINISHED)

            if not connected:
                room.is_active = False

            await self._save(room)
            return self._phase_result(room)

    async def status(self, room_id: str, player_id: str | None = None) -> RoomSnapshot:
        """Return the room as seen by ``player_id``, recovering and repairing it if needed."""
        async with self._get_room_lock(room_id):
            room = await self._load_room(room_id, player_id)
            return self._snapshot(room, player_id)

    async def history(self, room_id: str, player_id: str) -> HistoryView:
        """Return the room's guess log annotated for the requesting player."""
        async with self._get_room_lock(room_id):
            room = await self._load_room(room_id, player_id)
            self._require_player(room, player_id)

            entries = [self._history_entry(record, player_id) for record in room.history]
            yours = sum(1 for entry in entries if entry.is_you)
            return HistoryView(
                room_id=room.id,
                phase=room.phase,
                entries=entries,
                your_guesses=yours,
                opponent_guesses=len(entries) - yours,
                current_turn_player_id=room.current_turn_player_id,
                is_your_turn=room.current_turn_player_id == player_id,
                winner_id=room.winner_id,
                is_winner=room.winner_id == player_id,
            )

    async def opponent_secret(self, room_id: str, player_id: str) -> OpponentSecret:
        """Reveal the opponent's secret to a player who did not win a finished game."""
        async with self._get_room_lock(room_id):
            room = await self._load_room(room_id, player_id)
            self._require_player(room, player_id)

            if room.phase != RoomPhase.FINISHED:
                raise InvalidStateError("Game not finished yet", phase=room.phase.value)
            if room.winner_id == player_id:
                raise InvalidStateError("Winner cannot request opponent secret", phase=room.phase.value)
            opponent = room.opponent_of(player_id)
            if opponent is None:
                raise NotFoundError("Opponent not found", room_id=room.id)
            if not opponent.secret:
                raise NotFoundError("Opponent secret not available", room_id=room.id)

            logger.info("opponent secret revealed", room_id=room.id, player_id=player_id)
            return OpponentSecret(
                opponent_player_id=opponent.id,
                opponent_player_name=opponent.name,
                opponent_secret=opponent.secret,
            )

    async def suggest_secret(self, room_id: str) -> SuggestedSecret:
        """Generate a random valid secret for the room's digit count."""
        async with self._get_room_lock(room_id):
            room = await self._load_room(room_id)
            digit_count = room.agreed_digit_count or self._settings.default_digit_count
            secret = generate_secret(
                digit_count,
                self._rng,
                allow_duplicates=self._settings.allows_duplicates(digit_count),
            )
            return SuggestedSecret(room_id=room.id, digit_count=digit_count, secret=secret)

    # --- Loading, recovery and persistence ---

    async def _load_room(self, room_id: str, player_id: str | None = None) -> Room:
        """Load a room, recreating it if lost and repairing it if inconsistent."""
        room = await self._store.get_room(room_id)
        dirty = False

        if room is None:
            logger.warning("room state lost, recreating", room_id=room_id, player_id=player_id)
            room = Room(id=room_id, recovered=True)
            if player_id is not None:
                await self._recover_player(room, player_id, allow_placeholder=True)
            dirty = True
        elif player_id is not None and room.get_player(player_id) is None and not room.is_full:
            dirty = await self._recover_player(room, player_id, allow_placeholder=False)

        validation = validate_room(room)
        if not validation.valid:
            repair_room(room)
            dirty = True

        if dirty:
            await self._save(room)
        return room

    async def _recover_player(self, room: Room, player_id: str, *, allow_placeholder: bool) -> bool:
        """Re-seat a player the room has forgotten. Return True if one was added.

        A player record from the Player Store is restored when it belongs to
        this room. Otherwise, only a freshly recreated room accepts a
        placeholder with degraded metadata.
        """
        position = room.next_free_position()
        if position is None:
            return False

        stored = await self._store.get_player(player_id)
        if stored is not None and stored.room_id == room.id:
            taken = {p.position for p in room.players}
            if stored.position in taken:
                stored.position = position
            agreed = room.agreed_digit_count
            if agreed is not None and stored.secret and len(stored.secret) != agreed:
                stored.secret = None
                stored.is_ready = False
            player = stored
        elif allow_placeholder:
            player = Player(
                id=player_id,
                name=f"{PLACEHOLDER_NAME_PREFIX}{player_id[:_PLACEHOLDER_ID_CHARS]}",
                room_id=room.id,
                position=position,
                recovered=True,
            )
        else:
            return False

        room.players.append(player)
        room.recovered = True
        logger.info("player recovered", room_id=room.id, player_id=player_id, placeholder=player.recovered)
        return True

    async def _save(self, room: Room) -> None:
        room.touch()
        await self._store.set_room(room)
        for player in room.players:
            player.last_updated = utc_now()
            await self._store.set_player(player)

    async def _waiting_room_ids(self) -> list[str]:
        """Return ids of joinable rooms, oldest first."""
        candidates: list[Room] = []
        for room_id in await self._store.room_ids():
            room = await self._store.get_room(room_id)
            if room is not None and self._is_joinable(room):
                candidates.append(room)
        candidates.sort(key=lambda r: r.created_at)
        return [room.id for room in candidates]

    async def _allocate_room_id(self) -> str:
        """Generate a room code that no stored room uses."""
        for _ in range(self._settings.max_room_code_attempts):
            room_id = self._room_code_factory()
            if await self._store.get_room(room_id) is None:
                return room_id
            logger.info("room code collision, retrying", room_id=room_id)
        raise ConflictError(
            "Could not allocate a unique room code",
            attempts=self._settings.max_room_code_attempts,
        )

    # --- Rules ---

    @staticmethod
    def _is_joinable(room: Room) -> bool:
        """Return True for a lone connected player with no game setup.

        A player restored with a selection or secret holds the seat for their
        original opponent.
        """
        if not (room.is_active and room.phase == RoomPhase.WAITING and room.player_count == 1):
            return False
        player = room.players[0]
        return player.is_connected and player.selected_digit_count is None and not player.secret

    @staticmethod
    def _seat_player(room: Room, player_id: str, name: str) -> Player:
        position = room.next_free_position()
        if position is None:  # pragma: no cover  # guarded by _is_joinable
            raise ConflictError("Room is full", room_id=room.id)
        player = Player(id=player_id, name=name, room_id=room.id, position=position)
        room.players.append(player)
        return player

    @staticmethod
    def _require_player(room: Room, player_id: str) -> Player:
        player = room.get_player(player_id)
        if player is None:
            raise NotFoundError("Player not found in room", room_id=room.id)
        return player

    @staticmethod
    def _change_phase(room: Room, phase: RoomPhase) -> None:
        logger.info("phase changed", room_id=room.id, previous_phase=room.phase, phase=phase)
        room.phase = phase

    def _validate_digit_count(self, count: int) -> None:
        valid = isinstance(count, int) and not isinstance(count, bool) and self._settings.is_valid_digit_count(count)
        if not valid:
            raise InvalidInputError(
                f"Digit count must be between {self._settings.min_digits} and {self._settings.max_digits}",
                min_digits=self._settings.min_digits,
                max_digits=self._settings.max_digits,
            )

    def _resolve_digit_count(self, room: Room) -> int:
        """Host's selection wins; under REQUIRE_MATCH both selections are already equal."""
        host = room.host
        if host is not None and host.selected_digit_count is not None:
            return host.selected_digit_count
        return room.players_with_digits[0].selected_digit_count  # type: ignore[return-value]

    def _required_digits(self, room: Room) -> int:
        return room.agreed_digit_count or self._settings.default_digit_count

    @staticmethod
    def _replayed_guess(room: Room, player_id: str, guess: str) -> GuessRecord | None:
        """Return the last recorded guess if this request repeats it after it was applied."""
        if not room.history:
            return None
        last = room.history[-1]
        if last.player_id != player_id or last.guess != guess:
            return None
        if room.phase == RoomPhase.FINISHED or room.current_turn_player_id != player_id:
            return last
        return None

    # --- Read models ---

    @staticmethod
    def _phase_result(room: Room) -> PhaseResult:
        return PhaseResult(
            room_id=room.id,
            phase=room.phase,
            agreed_digit_count=room.agreed_digit_count,
            current_turn_player_id=room.current_turn_player_id,
        )

    def _guess_result(self, room: Room, record: GuessRecord) -> GuessResult:
        digit_count = self._required_digits(room)
        return GuessResult(
            guess=record.guess,
            bulls=record.bulls,
            cows=record.cows,
            is_win=record.bulls == digit_count,
            phase=room.phase,
            next_turn_player_id=room.current_turn_player_id,
            winner_id=room.winner_id,
        )

    @staticmethod
    def _history_entry(record: GuessRecord, player_id: str | None) -> HistoryEntryView:
        return HistoryEntryView(
            turn=record.turn_index,
            player_id=record.player_id,
            player_name=record.player_name,
            guess=record.guess,
            bulls=record.bulls,
            cows=record.cows,
            timestamp=record.timestamp,
            is_you=record.player_id == player_id,
            result=f"{record.bulls}B {record.cows}C",
        )

    def _snapshot(self, room: Room, player_id: str | None) -> RoomSnapshot:
        players = [
            PlayerView(
                id=p.id,
                name=p.name,
                position=p.position,
                selected_digit_count=p.selected_digit_count,
                is_ready=p.is_ready,
                is_connected=p.is_connected,
                is_you=p.id == player_id,
                secret=p.secret if p.id == player_id else None,
            )
            for p in room.players
        ]
        return RoomSnapshot(
            room_id=room.id,
            phase=room.phase,
            players=players,
            agreed_digit_count=room.agreed_digit_count,
            required_digits=room.agreed_digit_count,
            current_turn_player_id=room.current_turn_player_id,
            is_your_turn=player_id is not None and room.current_turn_player_id == player_id,
            history=[self._history_entry(record, player_id) for record in room.history],
            winner_id=room.winner_id,
            finish_reason=room.finish_reason,
            is_active=room.is_active,
            recovered=room.recovered,
            last_activity=room.last_activity,
        )
