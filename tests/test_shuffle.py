import asyncio

from remember_game.events import ShuffleDue
from remember_game.models import GameState
from remember_game.shuffle import ShuffleController
from remember_game.state_machine import GameStatus

from tests.fakes import SequenceRng


class _Timer:
    def __init__(self, state):
        self.state = state

    def reset(self):
        self.state.time_left = 5


def _controller(status=GameStatus.PLAYING, letters=("K",)):
    state = GameState(status=status, current_letter="E", time_left=1)
    published = []
    syncs = []
    controller = ShuffleController(
        state, _Timer(state), published.append, syncs.append, delay=0, rng=SequenceRng(*letters)
    )
    return state, controller, published, syncs


def test_shuffle_assigns_letter_resets_time_and_syncs_once() -> None:
    async def _exercise() -> None:
        state, controller, published, syncs = _controller()

        assert controller.trigger() is True
        assert state.shuffling is True
        await asyncio.sleep(0.01)
        assert published == [ShuffleDue()]

        assert controller.complete() == "K"
        assert state.current_letter == "K"
        assert state.time_left == 5
        assert state.shuffling is False
        assert syncs == ["K"]

    asyncio.run(_exercise())


def test_trigger_refused_while_shuffling() -> None:
    async def _exercise() -> None:
        state, controller, published, _ = _controller()

        assert controller.trigger() is True
        assert controller.trigger() is False
        await asyncio.sleep(0.01)
        assert len(published) == 1

    asyncio.run(_exercise())


def test_trigger_refused_when_not_playing() -> None:
    for status in (GameStatus.IDLE, GameStatus.CONNECTING, GameStatus.GAMEOVER):
        state, controller, _, syncs = _controller(status=status)
        assert controller.trigger() is False
        assert state.shuffling is False
        assert syncs == []


def test_completion_after_game_ended_does_not_sync() -> None:
    async def _exercise() -> None:
        state, controller, _, syncs = _controller()
        controller.trigger()
        state.status = GameStatus.GAMEOVER

        assert controller.complete() is None
        assert state.shuffling is False
        assert state.current_letter == "E"
        assert syncs == []

    asyncio.run(_exercise())


def test_cancel_drops_pending_shuffle() -> None:
    async def _exercise() -> None:
        state, controller, published, _ = _controller()
        controller.delay = 0.01
        controller.trigger()
        controller.cancel()
        await asyncio.sleep(0.03)

        assert published == []
        assert state.shuffling is False

    asyncio.run(_exercise())
