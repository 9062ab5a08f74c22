"""ゲーム状態管理

このモジュールは、Rememberゲームのセッション状態遷移を明示的に管理します。
状態遷移を明確化することで、タイマー停止やハイスコア記録などの
副作用を遷移ごとに一箇所で扱えるようにします。
"""

from enum import Enum
import logging

logger = logging.getLogger(__name__)


class GameStatus(Enum):
    """
    ゲーム状態定義

    Attributes:
        IDLE: 待機中（開始前、または開始失敗後）
        CONNECTING: 接続中（デバイス取得とLive API接続）
        PLAYING: プレイ中（ターンとタイマーが有効）
        GAMEOVER: ゲーム終了（新しいstartでのみ抜けられる）
    """
    IDLE = "idle"
    CONNECTING = "connecting"
    PLAYING = "playing"
    GAMEOVER = "gameover"


class StatusTransition:
    """
    状態遷移管理

    ゲームの状態遷移ルールを定義し、不正な状態遷移を検出します。
    """

    # 各状態から遷移可能な状態のセット
    ALLOWED_TRANSITIONS = {
        GameStatus.IDLE: {GameStatus.CONNECTING},
        GameStatus.CONNECTING: {GameStatus.PLAYING, GameStatus.IDLE},
        GameStatus.PLAYING: {GameStatus.GAMEOVER},
        GameStatus.GAMEOVER: {GameStatus.CONNECTING},
    }

    @classmethod
    def is_valid_transition(cls, from_status: GameStatus, to_status: GameStatus) -> bool:
        """
        状態遷移の妥当性チェック

        Args:
            from_status: 現在の状態
            to_status: 遷移先の状態

        Returns:
            True: 遷移可能, False: 遷移不可

        Examples:
            >>> StatusTransition.is_valid_transition(GameStatus.IDLE, GameStatus.CONNECTING)
            True
            >>> StatusTransition.is_valid_transition(GameStatus.IDLE, GameStatus.PLAYING)
            False
        """
        return to_status in cls.ALLOWED_TRANSITIONS.get(from_status, set())

    @classmethod
    def get_allowed_transitions(cls, from_status: GameStatus) -> set:
        """
        指定した状態から遷移可能な状態の一覧を取得

        Args:
            from_status: 現在の状態

        Returns:
            遷移可能な状態のセット
        """
        return cls.ALLOWED_TRANSITIONS.get(from_status, set())
