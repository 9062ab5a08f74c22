"""
カウントダウンタイマー

ターンごとの制限時間を管理します。状態は stopped / running の2つです。
running中はバックグラウンドタスクが interval 秒ごとに TimerTick イベントを
エンジンのキューへ投入し、エンジンが tick() を呼んで残り時間を減らします。
"""

import asyncio
import logging

from .events import TimerTick
from .models import GameState

logger = logging.getLogger(__name__)


class CountdownTimer:
    """
    ターン制限時間タイマー

    Attributes:
        state (GameState): time_left を更新するゲーム状態
        deadline (int): 1ターンの制限時間（秒）
        interval (float): ティック間隔（秒）
    """

    def __init__(self, state: GameState, deadline: int, publish, interval: float = 1.0):
        self.state = state
        self.deadline = deadline
        self.interval = interval
        self._publish = publish
        self._running = False
        self._task = None

    @property
    def running(self) -> bool:
        return self._running

    def start(self):
        """ティックを開始（実行中なら何もしない）"""
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._run())
        logger.debug("Countdown started")

    async def _run(self):
        while True:
            await asyncio.sleep(self.interval)
            self._publish(TimerTick())

    def tick(self) -> bool:
        """
        残り時間を1秒減らす

        Returns:
            True: 今回のティックで0に達した（期限切れ、以後は停止状態）
        """
        if not self._running:
            return False
        self.state.time_left = max(0, self.state.time_left - 1)
        if self.state.time_left == 0:
            self.stop()
            logger.info("Turn deadline expired")
            return True
        return False

    def reset(self):
        """残り時間を制限時間に戻す（実行状態は変えない）"""
        self.state.time_left = self.deadline

    def stop(self):
        self._running = False
        if self._task is not None:
            self._task.cancel()
            self._task = None
