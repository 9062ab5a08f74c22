import asyncio

from remember_game.events import TimerTick
from remember_game.models import GameState
from remember_game.timer import CountdownTimer


def test_timer_expires_exactly_once_after_deadline_ticks() -> None:
    async def _exercise() -> None:
        state = GameState(time_left=5)
        timer = CountdownTimer(state, 5, lambda event: None, interval=3600)
        timer.start()

        results = [timer.tick() for _ in range(7)]

        assert results == [False, False, False, False, True, False, False]
        assert state.time_left == 0
        assert timer.running is False

    asyncio.run(_exercise())


def test_reset_restores_deadline_while_running() -> None:
    async def _exercise() -> None:
        state = GameState(time_left=5)
        timer = CountdownTimer(state, 5, lambda event: None, interval=3600)
        timer.start()
        timer.tick()
        timer.tick()
        assert state.time_left == 3

        timer.reset()

        assert state.time_left == 5
        assert timer.running is True
        timer.stop()

    asyncio.run(_exercise())


def test_ticks_while_stopped_are_ignored() -> None:
    state = GameState(time_left=4)
    timer = CountdownTimer(state, 5, lambda event: None)

    assert timer.tick() is False
    assert state.time_left == 4


def test_running_timer_publishes_ticks() -> None:
    async def _exercise() -> None:
        published = []
        state = GameState(time_left=5)
        timer = CountdownTimer(state, 5, published.append, interval=0.01)
        timer.start()
        await asyncio.sleep(0.05)
        timer.stop()
        count = len(published)
        await asyncio.sleep(0.03)

        assert count >= 1
        assert all(isinstance(event, TimerTick) for event in published)
        assert len(published) == count

    asyncio.run(_exercise())
