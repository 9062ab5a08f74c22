"""
ゲームセッション管理

Rememberゲームのトップレベルの状態機械です。マイク・カメラ・Live APIセッション・
再生スケジューラ・タイマー・ターンエンジン・シャッフルを束ね、
単一のイベントキューを到着順に処理します。

状態遷移:
    idle → connecting → playing → gameover → (startで再びconnecting)
    connecting中の失敗（デバイス拒否・接続失敗）は idle に戻ります。

動作フロー:
1. start(): 前回のリソースを解放し、スコア・履歴を初期化して connecting へ
2. マイク・カメラを取得し、Live APIに接続
3. SessionOpened: playing へ遷移、タイマー開始、初期文字を同期、マイク/カメラ送信開始
4. 受信イベント: 応答音声の再生予約、文字起こしのターン判定、割り込み時の再生停止
5. タイマー期限切れ / セッション切断: gameover へ遷移、ハイスコア保存、リソース解放

全てのイベント処理は1つのasyncioタスク上で実行されるため、ゲーム状態の
読み書きはイベント単位で不可分です（ロックは不要）。
"""

import asyncio
import logging
import random

from .audio import AudioFrameCapture, PyAudioOutput
from .events import (
    AudioChunk,
    Interrupted,
    SessionClosed,
    SessionError,
    SessionOpened,
    ShuffleDue,
    SpeakingIndicatorExpired,
    TimerTick,
    Transcription,
    TranscriptionSide,
)
from .live_client import GeminiLiveClient
from .models import GameState, Player
from .playback import PlaybackScheduler
from .shuffle import LETTERS, ShuffleController
from .state_machine import GameStatus, StatusTransition
from .timer import CountdownTimer
from .turn_engine import TurnEngine
from .video import OpenCVCamera, VideoFrameSampler

logger = logging.getLogger(__name__)

SYNC_TEMPLATE = "The current target letter is now {letter}. The user must say a word starting with this letter."
PERMISSION_DENIED_MESSAGE = "Camera/Microphone access denied."


class GameSession:
    """
    ゲームセッション管理クラス

    依存オブジェクトは全てコンストラクタで注入します（テストではフェイクに差し替え可能）。

    Attributes:
        config (AppConfig): アプリケーション設定
        store (HighScoreStore): ハイスコアの永続化
        state (GameState): 唯一のゲーム状態（表示層にはsnapshot()のみ渡す）
        events (asyncio.Queue): エンジンイベントのキュー
        timer (CountdownTimer): ターン制限時間
        turns (TurnEngine): しりとりのルール判定
        shuffler (ShuffleController): 目標文字のシャッフル
        live (LiveSession): 現在のLive APIセッション
        capture (AudioFrameCapture): 現在のマイク入力（表示層の波形表示にも使用）
        camera (OpenCVCamera): 現在のカメラ
        scheduler (PlaybackScheduler): 応答音声の再生スケジューラ
    """

    def __init__(self, config, store, live_factory=None, capture_factory=None,
                 camera_factory=None, output_factory=None, rng=None, on_change=None):
        self.config = config
        self.store = store
        self.rng = rng or random.Random()
        self.on_change = on_change
        self.events = asyncio.Queue()

        game = config.game
        self.state = GameState(high_score=store.load(), time_left=game.turn_deadline)
        self.timer = CountdownTimer(self.state, game.turn_deadline, self.events.put_nowait,
                                    interval=game.tick_interval)
        self.turns = TurnEngine(self.state, self.timer, reward=game.turn_reward)
        self.shuffler = ShuffleController(self.state, self.timer, self.events.put_nowait,
                                          self._sync_letter, delay=game.shuffle_delay, rng=self.rng)

        self._live_factory = live_factory or self._default_live
        self._capture_factory = capture_factory or self._default_capture
        self._camera_factory = camera_factory or self._default_camera
        self._output_factory = output_factory or self._default_output

        # セッションごとのリソース（teardownで解放）
        self.live = None
        self.capture = None
        self.camera = None
        self.scheduler = None
        self._media_tasks = []

        self._loop_task = None
        self._speaking_generation = 0
        self._speaking_handle = None

    # ================================================================================
    # デフォルトのファクトリ
    # ================================================================================

    def _default_live(self, publish):
        return GeminiLiveClient(self.config.gemini_api_key, self.config.live, publish)

    def _default_capture(self):
        audio = self.config.audio
        return AudioFrameCapture(audio.input_sample_rate, audio.capture_frame_size, audio.input_device_index)

    def _default_camera(self):
        return OpenCVCamera(self.config.video.camera_index)

    def _default_output(self):
        audio = self.config.audio
        return PyAudioOutput(audio.output_sample_rate, audio.output_buffer_frames, audio.output_device_index)

    # ================================================================================
    # 表示層向けインターフェース
    # ================================================================================

    def snapshot(self):
        return self.state.snapshot()

    def _notify(self):
        if self.on_change is not None:
            self.on_change(self.state.snapshot())

    def _set_status(self, new_status: GameStatus) -> bool:
        """
        状態遷移（検証付き）

        Note:
            状態遷移が不正な場合は警告ログを出力し、遷移を行いません。
            playing以外へ遷移した時点でタイマーとシャッフルを停止します。
        """
        old_status = self.state.status
        if not StatusTransition.is_valid_transition(old_status, new_status):
            allowed = sorted(s.value for s in StatusTransition.get_allowed_transitions(old_status))
            logger.warning(
                f"Invalid status transition: {old_status.value} → {new_status.value} "
                f"(allowed: {allowed})"
            )
            return False

        self.state.status = new_status
        logger.info(f"Status transition: {old_status.value} → {new_status.value}")
        if new_status is not GameStatus.PLAYING:
            self.timer.stop()
            self.shuffler.cancel()
        return True

    # ================================================================================
    # コマンド
    # ================================================================================

    async def start(self) -> bool:
        """
        新しいゲームを開始

        Returns:
            True: 接続まで成功した, False: 開始できなかった（last_errorに理由）
        """
        status = self.state.status
        if not StatusTransition.is_valid_transition(status, GameStatus.CONNECTING):
            logger.warning(f"Start ignored while {status.value}")
            return False

        await self.teardown()
        self._drain_events()
        self.state.reset_for_session(self.rng.choice(LETTERS), self.config.game.turn_deadline)
        self._set_status(GameStatus.CONNECTING)
        self._ensure_loop()
        self._notify()

        try:
            self.capture = self._capture_factory()
            self.capture.open()
            if self.config.video.enabled:
                self.camera = self._camera_factory()
                self.camera.open()

            output = self._output_factory()
            self.scheduler = PlaybackScheduler(output, self.config.audio.output_sample_rate)
            output.open()

            self.live = self._live_factory(self.events.put_nowait)
            await self.live.open()
        except PermissionError as e:
            logger.error(f"Media device access denied: {e}")
            await self._abort_start(PERMISSION_DENIED_MESSAGE)
            return False
        except (OSError, RuntimeError) as e:
            logger.error(f"Failed to start game session: {e}")
            await self._abort_start(f"System error: {e}")
            return False
        return True

    async def _abort_start(self, message):
        await self.teardown()
        # stop()で既にidleへ戻っている場合は何もしない
        if self.state.status is GameStatus.CONNECTING:
            self.state.last_error = message
            self._set_status(GameStatus.IDLE)
        self._notify()

    def shuffle(self) -> bool:
        triggered = self.shuffler.trigger()
        self._notify()
        return triggered

    async def stop(self):
        """プレイ中ならゲーム終了、接続中ならidleへ戻す"""
        status = self.state.status
        if status is GameStatus.PLAYING:
            await self._game_over("stopped by player")
        elif status is GameStatus.CONNECTING:
            await self.teardown()
            self._set_status(GameStatus.IDLE)
        self._notify()

    async def shutdown(self):
        """アプリ終了時の後始末（イベントループタスクも停止）"""
        await self.stop()
        await self.teardown()
        if self._loop_task is not None:
            self._loop_task.cancel()
            await asyncio.gather(self._loop_task, return_exceptions=True)
            self._loop_task = None

    async def teardown(self):
        """
        セッションごとのリソースを解放

        どの状態からでも、何度呼び出しても安全です。解放中のエラーはログに残して続行します。
        """
        self.timer.stop()
        self.shuffler.cancel()
        tasks, self._media_tasks = self._media_tasks, []
        capture, self.capture = self.capture, None
        camera, self.camera = self.camera, None
        scheduler, self.scheduler = self.scheduler, None
        live, self.live = self.live, None
        self._cancel_speaking_indicator()
        self.state.user_speaking = False

        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        if capture is not None:
            try:
                capture.close()
            except Exception as e:
                logger.warning(f"Error releasing microphone: {e}")
        if camera is not None:
            try:
                camera.release()
            except Exception as e:
                logger.warning(f"Error releasing camera: {e}")
        if scheduler is not None:
            scheduler.close()
        if live is not None:
            try:
                await live.close()
            except Exception as e:
                logger.warning(f"Error closing live session: {e}")

    # ================================================================================
    # イベントループ
    # ================================================================================

    def _ensure_loop(self):
        if self._loop_task is None or self._loop_task.done():
            self._loop_task = asyncio.create_task(self._run_loop())

    def _drain_events(self):
        """前回セッションの未処理イベントを破棄"""
        while True:
            try:
                self.events.get_nowait()
            except asyncio.QueueEmpty:
                break
            self.events.task_done()

    async def _run_loop(self):
        while True:
            event = await self.events.get()
            try:
                await self._handle_event(event)
            except Exception as e:
                logger.error(f"Error handling {type(event).__name__}: {e}", exc_info=True)
            finally:
                self.events.task_done()
            self._notify()

    async def _handle_event(self, event):
        if isinstance(event, AudioChunk):
            if self.scheduler is not None and self.state.status is GameStatus.PLAYING:
                self.scheduler.enqueue(event.data)
        elif isinstance(event, Transcription):
            self._on_transcription(event)
        elif isinstance(event, Interrupted):
            if self.scheduler is not None:
                self.scheduler.interrupt()
        elif isinstance(event, TimerTick):
            if self.timer.tick():
                await self._game_over("time ran out")
        elif isinstance(event, ShuffleDue):
            self.shuffler.complete()
        elif isinstance(event, SpeakingIndicatorExpired):
            if event.generation == self._speaking_generation:
                self._speaking_handle = None
                self.state.user_speaking = False
        elif isinstance(event, SessionOpened):
            self._on_opened()
        elif isinstance(event, SessionError):
            logger.error(f"Live session error: {event.reason}")
            await self._on_session_ended(event.reason)
        elif isinstance(event, SessionClosed):
            logger.info(f"Live session closed: {event.reason}")
            await self._on_session_ended(event.reason or "connection closed")
        else:
            logger.warning(f"Unknown event: {event!r}")

    def _on_opened(self):
        if self.state.status is not GameStatus.CONNECTING:
            logger.debug("Ignoring SessionOpened outside of connecting")
            return

        self._set_status(GameStatus.PLAYING)
        self.timer.reset()
        self.timer.start()
        self._sync_letter(self.state.current_letter)

        if self.capture is not None:
            self._media_tasks.append(asyncio.create_task(self.capture.pump(self.live)))
        if self.camera is not None:
            video = self.config.video
            sampler = VideoFrameSampler(self.camera, self.live, video.sample_interval,
                                        video.frame_width, video.frame_height, video.jpeg_quality)
            self._media_tasks.append(asyncio.create_task(sampler.run()))

    def _on_transcription(self, event):
        if event.side is TranscriptionSide.INPUT:
            self._mark_user_speaking()
            self.turns.submit(Player.HUMAN, event.text)
        else:
            self.turns.submit(Player.AI, event.text)

    def _mark_user_speaking(self):
        if self.state.status is not GameStatus.PLAYING:
            return
        self._cancel_speaking_indicator()
        self._speaking_generation += 1
        self.state.user_speaking = True
        self._speaking_handle = asyncio.get_running_loop().call_later(
            self.config.game.speaking_indicator_seconds,
            self.events.put_nowait,
            SpeakingIndicatorExpired(self._speaking_generation),
        )

    def _cancel_speaking_indicator(self):
        if self._speaking_handle is not None:
            self._speaking_handle.cancel()
            self._speaking_handle = None

    def _sync_letter(self, letter):
        if self.live is not None:
            self.live.send_system_sync(SYNC_TEMPLATE.format(letter=letter.upper()))

    async def _on_session_ended(self, reason):
        status = self.state.status
        if status is GameStatus.PLAYING:
            await self._game_over(reason)
        elif status is GameStatus.CONNECTING:
            await self._abort_start(f"System error: {reason}")

    async def _game_over(self, reason):
        """ゲーム終了（セッションごとに1回だけ）"""
        if self.state.status is not GameStatus.PLAYING:
            return
        self._set_status(GameStatus.GAMEOVER)
        logger.info(f"Game over ({reason}): score={self.state.score}, high score={self.state.high_score}")
        if self.state.record_high_score():
            logger.info(f"New high score: {self.state.high_score}")
            self.store.save(self.state.high_score)
        await self.teardown()
