"""
シャッフルコントローラー

プレイ中に目標文字をランダムに再割り当てします（しりとりの連鎖とは無関係）。
trigger()で約0.4秒の演出状態に入り、終了時（ShuffleDueイベント）に
A〜Zから一様ランダムに文字を選んで current_letter に設定し、
残り時間をリセットしてリモートAIへ状態同期メッセージを送ります。
AIのターン管理は連鎖の継続しか追跡しないため、この同期が必要です。
"""

import asyncio
import logging
import random
import string
from typing import Optional

from .events import ShuffleDue
from .models import GameState
from .state_machine import GameStatus

logger = logging.getLogger(__name__)

LETTERS = string.ascii_uppercase


class ShuffleController:
    """
    目標文字のシャッフル

    Attributes:
        state (GameState): 更新対象のゲーム状態
        timer (CountdownTimer): 文字決定時にリセットするタイマー
        delay (float): 演出時間（秒）
    """

    def __init__(self, state: GameState, timer, publish, sync_letter, delay: float = 0.4, rng=None):
        self.state = state
        self.timer = timer
        self.delay = delay
        self._publish = publish
        self._sync_letter = sync_letter
        self._rng = rng or random.Random()
        self._handle = None

    def trigger(self) -> bool:
        """
        シャッフルを開始

        Returns:
            True: 開始した, False: プレイ中でない、またはシャッフル中
        """
        if self.state.status is not GameStatus.PLAYING:
            logger.debug("Shuffle ignored: game is not playing")
            return False
        if self.state.shuffling:
            logger.debug("Shuffle ignored: already shuffling")
            return False

        self.state.shuffling = True
        self._handle = asyncio.get_running_loop().call_later(self.delay, self._publish, ShuffleDue())
        logger.info("Shuffle triggered")
        return True

    def complete(self) -> Optional[str]:
        """
        演出終了時に新しい文字を割り当てる

        Returns:
            割り当てた文字（プレイ中でなくなっていた場合はNone）
        """
        if not self.state.shuffling:
            return None
        self.state.shuffling = False
        self._handle = None
        if self.state.status is not GameStatus.PLAYING:
            return None

        letter = self._rng.choice(LETTERS)
        self.state.current_letter = letter
        self.timer.reset()
        self._sync_letter(letter)
        logger.info(f"Shuffle complete: new letter {letter}")
        return letter

    def cancel(self):
        """保留中のシャッフルを破棄"""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self.state.shuffling = False
