"""
ゲームデータモデル

ターン履歴、スコア、現在の文字、残り時間などのゲーム状態と、
送信用メディアチャンク・受信音声チャンクの型を定義します。

GameStateはGameSessionが唯一の所有者として保持し、表示層には
snapshot()で作成した読み取り専用のコピーのみを渡します。
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

import numpy as np

from .state_machine import GameStatus


class Player(Enum):
    """ターンのプレイヤー"""
    HUMAN = "human"
    AI = "ai"


class MediaKind(Enum):
    """送信メディアの種類"""
    AUDIO = "audio"
    IMAGE = "image"


@dataclass(frozen=True)
class GameTurn:
    """
    受理された1ターン（作成後は不変）

    Attributes:
        player: 発話したプレイヤー
        word: 小文字の単語（2文字以上のアルファベット）
        timestamp: 単調増加する受理時刻（time.monotonic基準）
    """
    player: Player
    word: str
    timestamp: float


@dataclass(frozen=True)
class OutboundMediaChunk:
    """
    Live APIへ送信するメディアチャンク

    Attributes:
        payload: エンコード済みバイト列（PCM16 または JPEG）
        kind: メディア種別
        mime_type: 送信時のMIMEタイプ
    """
    payload: bytes
    kind: MediaKind
    mime_type: str


@dataclass(frozen=True, eq=False)
class PendingAudioChunk:
    """デコード済みのAI応答音声（再生スケジューラが消費する）"""
    payload: bytes
    samples: np.ndarray
    duration: float


@dataclass(frozen=True)
class GameSnapshot:
    """表示層向けの読み取り専用スナップショット"""
    score: int
    high_score: int
    current_letter: str
    history: Tuple[GameTurn, ...]
    status: GameStatus
    time_left: int
    shuffling: bool
    user_speaking: bool
    last_error: Optional[str]


@dataclass
class GameState:
    """
    ゲーム全体の集約状態

    Attributes:
        score: 現在のスコア（人間の受理ターンのみ加算）
        high_score: 過去最高スコア（永続化される）
        current_letter: 次の単語の開始文字（大文字1文字、未開始時は空）
        history: 受理ターンの履歴（セッション中は追記のみ）
        status: ゲーム状態
        time_left: 現在ターンの残り秒数
        shuffling: シャッフル演出中フラグ
        user_speaking: ユーザー発話検知中フラグ
        last_error: 直近の開始失敗メッセージ（表示用）
    """
    score: int = 0
    high_score: int = 0
    current_letter: str = ""
    history: List[GameTurn] = field(default_factory=list)
    status: GameStatus = GameStatus.IDLE
    time_left: int = 0
    shuffling: bool = False
    user_speaking: bool = False
    last_error: Optional[str] = None

    def reset_for_session(self, letter: str, deadline: int) -> None:
        """新しいセッション開始時にスコア・履歴・文字・残り時間を初期化"""
        self.score = 0
        self.history = []
        self.current_letter = letter
        self.time_left = deadline
        self.shuffling = False
        self.user_speaking = False
        self.last_error = None

    def record_high_score(self) -> bool:
        """
        ゲーム終了時のスコアでハイスコアを更新

        Returns:
            True: ハイスコアを更新した（永続化が必要）
        """
        if self.score > self.high_score:
            self.high_score = self.score
            return True
        return False

    def snapshot(self) -> GameSnapshot:
        return GameSnapshot(
            score=self.score,
            high_score=self.high_score,
            current_letter=self.current_letter,
            history=tuple(self.history),
            status=self.status,
            time_left=self.time_left,
            shuffling=self.shuffling,
            user_speaking=self.user_speaking,
            last_error=self.last_error,
        )
