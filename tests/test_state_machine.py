import pytest

from remember_game.state_machine import GameStatus, StatusTransition

S = GameStatus


@pytest.mark.parametrize(
    "source, target",
    [
        (S.IDLE, S.CONNECTING),
        (S.CONNECTING, S.PLAYING),
        (S.CONNECTING, S.IDLE),
        (S.PLAYING, S.GAMEOVER),
        (S.GAMEOVER, S.CONNECTING),
    ],
)
def test_allowed_transitions(source, target) -> None:
    assert StatusTransition.is_valid_transition(source, target) is True


@pytest.mark.parametrize(
    "source, target",
    [
        (S.IDLE, S.PLAYING),
        (S.IDLE, S.GAMEOVER),
        (S.PLAYING, S.IDLE),
        (S.PLAYING, S.CONNECTING),
        (S.GAMEOVER, S.PLAYING),
        (S.GAMEOVER, S.IDLE),
    ],
)
def test_rejected_transitions(source, target) -> None:
    assert StatusTransition.is_valid_transition(source, target) is False


def test_gameover_only_leaves_through_connecting() -> None:
    assert StatusTransition.get_allowed_transitions(S.GAMEOVER) == {S.CONNECTING}
