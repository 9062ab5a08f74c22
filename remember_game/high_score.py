"""
ハイスコアストア - 単一スカラー値 "high_score" の永続化

保存形式（JSON）:
{
  "high_score": 120
}

ファイルが存在しない、または壊れている場合は 0 として扱います。
書き込みは一時ファイル + os.replace によるアトミック置換で行います。
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

HIGH_SCORE_KEY = "high_score"


class HighScoreStore:
    """ハイスコアのファイル永続化"""

    def __init__(self, file_path: Path):
        self._file_path = Path(file_path)

    @property
    def file_path(self) -> Path:
        return self._file_path

    def load(self) -> int:
        """保存済みハイスコアを読み込む（未保存・破損時は0）"""
        if not self._file_path.exists():
            logger.debug(f"No high score file found at {self._file_path}")
            return 0

        try:
            with open(self._file_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            logger.error(f"Invalid JSON in high score file: {e}")
            return 0
        except OSError as e:
            logger.error(f"Failed to read high score file: {e}")
            return 0

        value = data.get(HIGH_SCORE_KEY, 0) if isinstance(data, dict) else 0
        if not isinstance(value, int) or isinstance(value, bool) or value < 0:
            logger.warning(f"Ignoring invalid high score value: {value!r}")
            return 0
        logger.info(f"Loaded high score {value}")
        return value

    def save(self, score: int) -> None:
        """
        ハイスコアを保存

        Args:
            score: 保存するスコア（0以上）

        Raises:
            ValueError: 負のスコアが渡された場合
        """
        if score < 0:
            raise ValueError(f"High score must be non-negative: {score}")

        try:
            self._file_path.parent.mkdir(parents=True, exist_ok=True)

            tmp_path: Optional[Path] = None
            try:
                with tempfile.NamedTemporaryFile(
                    "w",
                    dir=str(self._file_path.parent),
                    delete=False,
                    encoding="utf-8",
                ) as tmp:
                    tmp_path = Path(tmp.name)
                    json.dump({HIGH_SCORE_KEY: score}, tmp)
                    tmp.flush()
                    os.fsync(tmp.fileno())

                os.replace(tmp_path, self._file_path)
            finally:
                if tmp_path is not None:
                    try:
                        tmp_path.unlink()
                    except FileNotFoundError:
                        pass

            logger.info(f"Saved high score {score} to {self._file_path}")
        except OSError as e:
            logger.error(f"Failed to save high score: {e}")
