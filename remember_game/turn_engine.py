"""
ターンエンジン（しりとりルール）

文字起こしテキストから単語を抽出し、ターンとして受理するかを判定します。
受理したターンは履歴に追加され、次の文字・残り時間・スコアが更新されます。
人間とAIのどちらのターンも同じ規則で処理します（加点は人間のみ）。

受理ポリシー:
    1. プレイ中以外の文字起こしは無視
    2. 2文字以上の英字の連続が見つからない断片は無視（途中経過の文字起こしは正常）
    3. 直前の履歴と同じ単語は無視（同じ発話に対する重複コールバックのデバウンス）

注意:
    単語の先頭文字が current_letter と一致するか、履歴全体で重複していないかは
    判定しません。直前の1件との一致のみを除外します。
"""

import logging
import re
import time
from typing import Optional

from .models import GameState, GameTurn, Player
from .state_machine import GameStatus

logger = logging.getLogger(__name__)

WORD_PATTERN = re.compile(r"[a-z]{2,}")


def extract_word(text) -> Optional[str]:
    """
    テキストから最初の英単語（2文字以上）を小文字で抽出

    Examples:
        >>> extract_word("  Apple pie!")
        'apple'
        >>> extract_word("a big dog")
        'big'
        >>> extract_word("...") is None
        True
    """
    if not text:
        return None
    match = WORD_PATTERN.search(text.strip().lower())
    return match.group(0) if match else None


class TurnEngine:
    """
    しりとりのルールエンジン

    Attributes:
        state (GameState): 更新対象のゲーム状態
        timer (CountdownTimer): 受理時にリセットするタイマー
        reward (int): 人間のターン受理時の加算点
    """

    def __init__(self, state: GameState, timer, reward: int = 10, clock=time.monotonic):
        self.state = state
        self.timer = timer
        self.reward = reward
        self._clock = clock

    def _next_timestamp(self) -> float:
        now = self._clock()
        history = self.state.history
        if history and now <= history[-1].timestamp:
            now = history[-1].timestamp + 1e-6
        return now

    def submit(self, player: Player, raw_text: str) -> Optional[GameTurn]:
        """
        発話テキストをターンとして提出

        Args:
            player: 発話したプレイヤー
            raw_text: 文字起こしテキスト（断片を含む）

        Returns:
            受理したGameTurn（無視した場合はNone）
        """
        if self.state.status is not GameStatus.PLAYING:
            logger.debug(f"Ignoring {player.value} transcription while {self.state.status.value}")
            return None

        word = extract_word(raw_text)
        if word is None:
            logger.debug(f"No word in {player.value} transcription: {raw_text!r}")
            return None

        history = self.state.history
        if history and history[-1].word == word:
            logger.debug(f"Debounced repeated word: {word}")
            return None

        turn = GameTurn(player=player, word=word, timestamp=self._next_timestamp())
        history.append(turn)
        self.state.current_letter = word[-1].upper()
        self.timer.reset()
        if player is Player.HUMAN:
            self.state.score += self.reward

        logger.info(
            f"Turn accepted: {player.value}={word} -> next letter {self.state.current_letter} "
            f"(score={self.state.score})"
        )
        return turn
