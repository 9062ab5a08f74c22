#!/usr/bin/env python3
"""
Rememberゲーム 端末フロントエンド

GameSessionを起動し、標準入力から1行ずつコマンドを受け付けます。
画面レイアウトは持たず、状態が変わるたびにスナップショットをログに出力します。

コマンド:
    (Enter) : ゲーム開始（idle / gameover から）
    s       : 目標文字をシャッフル
    x       : ゲームを終了
    q       : アプリを終了
"""

import asyncio
import logging

from dotenv import load_dotenv

from remember_game.config_models import AppConfig
from remember_game.game_session import GameSession
from remember_game.high_score import HighScoreStore
from remember_game.logging_config import setup_logging
from remember_game.state_machine import GameStatus

logger = logging.getLogger(__name__)

HELP_TEXT = "[Enter] start  [s] shuffle  [x] stop  [q] quit"


def format_snapshot(snapshot):
    """スナップショットを1行のステータス表示に変換"""
    parts = [
        f"status={snapshot.status.value}",
        f"letter={snapshot.current_letter or '-'}",
        f"time={snapshot.time_left}",
        f"score={snapshot.score}",
        f"high={snapshot.high_score}",
    ]
    if snapshot.history:
        last = snapshot.history[-1]
        parts.append(f"last={last.player.value}:{last.word}")
    if snapshot.shuffling:
        parts.append("SHUFFLING")
    if snapshot.user_speaking:
        parts.append("speaking")
    if snapshot.last_error and snapshot.status is GameStatus.IDLE:
        parts.append(f"error={snapshot.last_error!r}")
    return " ".join(parts)


class GameApp:
    """
    端末フロントエンド

    Attributes:
        session (GameSession): ゲームエンジン
        running (bool): コマンドループ継続フラグ
    """

    def __init__(self, config, store):
        self.session = GameSession(config, store, on_change=self.render)
        self.running = True
        self._last_line = None

    def render(self, snapshot):
        # 変化があった場合のみ出力
        line = format_snapshot(snapshot)
        if line != self._last_line:
            self._last_line = line
            logger.info(line)

    async def handle_command(self, command):
        command = command.strip().lower()
        if command == "":
            await self.session.start()
        elif command == "s":
            if not self.session.shuffle():
                logger.info("Shuffle is only available while playing")
        elif command == "x":
            await self.session.stop()
        elif command == "q":
            self.running = False
        else:
            logger.info(HELP_TEXT)

    async def run(self):
        loop = asyncio.get_running_loop()
        logger.info(HELP_TEXT)
        self.render(self.session.snapshot())
        try:
            while self.running:
                try:
                    # input()はブロッキングのためスレッドプールで実行
                    command = await loop.run_in_executor(None, input, "> ")
                except EOFError:
                    break
                await self.handle_command(command)
        finally:
            logger.info("Shutting down game session...")
            await self.session.shutdown()
            logger.info("Remember game exited")


def main():
    load_dotenv()
    config = AppConfig()
    setup_logging(str(config.paths.log_dir), getattr(logging, config.log_level.upper(), logging.INFO))

    store = HighScoreStore(config.paths.high_score_file)
    app = GameApp(config, store)
    try:
        asyncio.run(app.run())
    except KeyboardInterrupt:
        logger.info("Application interrupted by user")
    except Exception as e:
        logger.error(f"Application error: {e}", exc_info=True)


if __name__ == "__main__":
    main()
