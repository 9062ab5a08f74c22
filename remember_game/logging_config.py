"""ロギング設定

このモジュールは、remember_gameアプリケーション全体のロギング設定を管理します。
ファイル出力とコンソール出力の両方に対応し、日次ローテーションを実装しています。
"""

import logging
import sys
from pathlib import Path
from logging.handlers import TimedRotatingFileHandler

NOISY_LOGGERS = ("websockets", "asyncio")


def setup_logging(log_dir: str = "logs", level: int = logging.INFO):
    """
    ロギング設定を初期化

    ファイルハンドラー（日次ローテーション）とコンソールハンドラーを設定し、
    アプリケーション全体で統一されたログフォーマットを提供します。

    Args:
        log_dir: ログファイル出力ディレクトリ（デフォルト: "logs"）
        level: ログレベル（デフォルト: logging.INFO）

    Returns:
        ルートロガー

    Note:
        - ログファイルは毎日0時にローテーションされます
        - 過去7日分のログが保持されます
        - ログフォーマット: "YYYY-MM-DD HH:MM:SS [LEVEL] module:line - message"
    """
    log_path = Path(log_dir)
    log_path.mkdir(parents=True, exist_ok=True)

    formatter = logging.Formatter(
        '%(asctime)s [%(levelname)s] %(name)s:%(lineno)d - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    file_handler = TimedRotatingFileHandler(
        log_path / "remember_game.log",
        when='midnight',
        backupCount=7  # 7日分保持
    )
    file_handler.setFormatter(formatter)
    file_handler.setLevel(level)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    console_handler.setLevel(level)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # 既存のハンドラーをクリア（重複を防ぐ）
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    root_logger.addHandler(file_handler)
    root_logger.addHandler(console_handler)

    # ライブラリのログはWARNING以上のみ
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    root_logger.info(f"Logging initialized (log_dir={log_dir}, level={logging.getLevelName(level)})")

    return root_logger
