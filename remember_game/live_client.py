"""
Gemini Live APIクライアント

WebSocket経由でGemini Live API（BidiGenerateContent）に接続し、
音声・カメラフレームの送信と、AI応答音声・文字起こし・割り込み通知の受信を行います。

受信したメッセージは型付きイベント（events.py）に変換し、到着順のまま
コンストラクタで渡された publish コールバックへ渡します。
送信はキュー経由のファイア・アンド・フォーゲットで、呼び出し側をブロックしません。
"""

import asyncio
import base64
import contextlib
import json
import logging
from abc import ABC, abstractmethod

import websockets

from .events import (
    AudioChunk,
    Interrupted,
    SessionClosed,
    SessionError,
    SessionOpened,
    Transcription,
    TranscriptionSide,
)

logger = logging.getLogger(__name__)


SYSTEM_PROMPT = """
You are playing a game called "Remember" with the user.
Game Rules:
1. It is a word chain game.
2. Normally, you respond with a word starting with the last letter of the user's word.
3. CRITICAL: If the UI displays a "RANDOM LETTER", the next word must start with THAT specific letter, breaking the previous chain.
4. Your response must be EXACTLY ONE WORD. Do not explain, just say the word.
5. If the user repeats a word, they lose.
6. Keep the pace fast and competitive.
7. Be encouraging.

If the game starts or a shuffle happens, the UI will provide a target letter. Always respect the current target letter shown in the interface.
"""


class LiveSession(ABC):
    """
    リモートAIとの双方向ストリーミングセッションのインターフェース

    エンジンは具体的なトランスポートに依存せず、このインターフェースのみを使います。
    受信イベントはコンストラクタで渡された publish コールバックへ到着順に渡されます。
    """

    @abstractmethod
    async def open(self):
        """接続を確立し、成功時に SessionOpened を発行（失敗時は ConnectionError）"""

    @abstractmethod
    def send_media(self, chunk):
        """メディアチャンクを送信（ノンブロッキング）"""

    @abstractmethod
    def send_system_sync(self, text):
        """[SYSTEM: ...] 形式の状態同期メッセージを送信（ノンブロッキング）"""

    @abstractmethod
    async def close(self):
        """接続を解放（複数回・未接続でも安全）"""


def system_sync_text(text):
    text = text.strip()
    if text.startswith("[SYSTEM:"):
        return text
    return f"[SYSTEM: {text}]"


def build_setup_message(config, system_prompt=SYSTEM_PROMPT):
    """
    セッション設定メッセージを作成

    セッション設定:
        - モダリティ: AUDIO
        - 音声: プリセット音声（デフォルト Puck）
        - 入力/出力の文字起こしを有効化
    """
    return {
        "setup": {
            "model": config.model,
            "generationConfig": {
                "responseModalities": ["AUDIO"],
                "speechConfig": {
                    "voiceConfig": {"prebuiltVoiceConfig": {"voiceName": config.voice}}
                },
            },
            "systemInstruction": {"parts": [{"text": system_prompt}]},
            "inputAudioTranscription": {},
            "outputAudioTranscription": {},
        }
    }


def encode_media_message(chunk):
    return {
        "realtimeInput": {
            "mediaChunks": [{
                "mimeType": chunk.mime_type,
                "data": base64.b64encode(chunk.payload).decode('utf-8'),
            }]
        }
    }


def encode_sync_message(text):
    return {
        "clientContent": {
            "turns": [{"role": "user", "parts": [{"text": system_sync_text(text)}]}],
            "turnComplete": True,
        }
    }


def _as_dict(value):
    return value if isinstance(value, dict) else {}


def parse_server_message(data):
    """
    サーバーメッセージをエンジンイベントに変換

    1メッセージ内の順序: 応答音声 → 入力文字起こし → 出力文字起こし → 割り込み

    Returns:
        list: イベントのリスト（対象外のメッセージは空リスト）
    """
    server_content = data.get("serverContent")
    if not isinstance(server_content, dict):
        return []

    events = []
    model_turn = _as_dict(server_content.get("modelTurn"))
    parts = model_turn.get("parts")
    for part in parts if isinstance(parts, list) else []:
        inline = _as_dict(part.get("inlineData")) if isinstance(part, dict) else {}
        data_b64 = inline.get("data")
        if not data_b64:
            continue
        try:
            events.append(AudioChunk(base64.b64decode(data_b64, validate=True)))
        except (TypeError, ValueError) as e:
            # 1チャンクの欠落として扱う
            logger.warning(f"Dropping undecodable audio part: {e}")

    for key, side in (("inputTranscription", TranscriptionSide.INPUT),
                      ("outputTranscription", TranscriptionSide.OUTPUT)):
        text = _as_dict(server_content.get(key)).get("text")
        if isinstance(text, str) and text:
            events.append(Transcription(side, text))

    if server_content.get("interrupted"):
        events.append(Interrupted())
    return events


class GeminiLiveClient(LiveSession):
    """
    Gemini Live API WebSocketクライアント

    イベントフロー:
        送信: setup → realtimeInput（PCM16 16kHz / JPEG, Base64）、clientContent（状態同期）
        受信: setupComplete、serverContent（音声・文字起こし・割り込み）

    Attributes:
        ws: WebSocket接続
        config (LiveAPIConfig): 接続設定
        publish (callable): 受信イベントを受け取るコールバック
    """

    def __init__(self, api_key, config, publish, system_prompt=SYSTEM_PROMPT, connect=websockets.connect):
        self.api_key = api_key
        self.config = config
        self.publish = publish
        self.system_prompt = system_prompt
        self._connect = connect
        self.ws = None
        self._outbound = asyncio.Queue()
        self._receive_task = None
        self._send_task = None
        self._closed = False

    async def open(self):
        """
        Gemini Live APIに接続

        接続失敗時は connect_attempts 回まで試行します。
        開始後のセッションが切断された場合の再接続は行いません。

        Raises:
            ConnectionError: 接続・セットアップに失敗した場合、またはクローズ済みの場合
        """
        attempts = self.config.connect_attempts
        for attempt in range(1, attempts + 1):
            if self._closed:
                raise ConnectionError("Live session was closed before it opened")
            try:
                await self._open_internal()
                logger.info(f"Connected to Gemini Live API (attempt {attempt}/{attempts})")
                break
            except Exception as e:
                logger.error(f"Connection attempt {attempt}/{attempts} failed: {e}")
                await self._discard_socket()
                if attempt < attempts:
                    logger.info(f"Retrying in {self.config.retry_delay} seconds...")
                    await asyncio.sleep(self.config.retry_delay)
                else:
                    raise ConnectionError(f"Failed to connect to Gemini Live API after {attempts} attempts") from e

        if self._closed:
            await self._discard_socket()
            raise ConnectionError("Live session was closed while opening")

        self._receive_task = asyncio.create_task(self._receive_loop())
        self._send_task = asyncio.create_task(self._send_loop())
        self._emit(SessionOpened())

    async def _open_internal(self):
        url = f"{self.config.url}?key={self.api_key}"
        self.ws = await self._connect(url, max_size=None)
        logger.debug("WebSocket connection established")

        await self.ws.send(json.dumps(build_setup_message(self.config, self.system_prompt)))
        reply = await asyncio.wait_for(self.ws.recv(), timeout=self.config.setup_timeout)
        data = json.loads(reply)
        if "setupComplete" not in data:
            raise ConnectionError(f"Unexpected setup reply: {list(data)}")

    async def _discard_socket(self):
        if self.ws is None:
            return
        try:
            await self.ws.close()
        except Exception as e:
            logger.debug(f"Error closing socket: {e}")
        self.ws = None

    def _emit(self, event):
        # close()後はイベントを発行しない
        if not self._closed:
            self.publish(event)

    def send_media(self, chunk):
        if self._closed:
            return
        self._outbound.put_nowait(encode_media_message(chunk))

    def send_system_sync(self, text):
        if self._closed:
            return
        logger.info(f"System sync: {system_sync_text(text)}")
        self._outbound.put_nowait(encode_sync_message(text))

    async def _send_loop(self):
        """送信キューを順に送出（最初の送信失敗で SessionError を発行して終了）"""
        while True:
            message = await self._outbound.get()
            try:
                await self.ws.send(json.dumps(message))
            except websockets.exceptions.ConnectionClosedOK:
                logger.debug("Send skipped: connection closed normally")
                return
            except Exception as e:
                logger.error(f"Error sending message: {e}")
                self._emit(SessionError(f"send failed: {e}"))
                return

    async def _receive_loop(self):
        """
        WebSocketからメッセージを受信し続けるループ

        処理されるメッセージ:
            - serverContent: 音声・文字起こし・割り込み → イベント発行
            - goAway: サーバー側の切断予告（ログのみ）
            - 不正なJSON: ログを出してスキップ
        """
        try:
            async for message in self.ws:
                try:
                    data = json.loads(message)
                except (TypeError, ValueError) as e:
                    logger.warning(f"Skipping malformed frame: {e}")
                    continue
                if not isinstance(data, dict):
                    continue

                if "goAway" in data:
                    logger.warning(f"Server requested disconnect: {data['goAway']}")

                try:
                    events = parse_server_message(data)
                except (AttributeError, TypeError, ValueError) as e:
                    logger.warning(f"Skipping unparseable server message: {e}")
                    continue
                for event in events:
                    self._emit(event)

            logger.info("Gemini Live API connection closed")
            self._emit(SessionClosed("connection closed by server"))
        except websockets.exceptions.ConnectionClosedError as e:
            logger.error(f"Gemini Live API connection lost: {e}")
            self._emit(SessionError(f"connection lost: {e}"))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Error in receive loop: {e}", exc_info=True)
            self._emit(SessionError(str(e)))

    async def close(self):
        """
        WebSocket接続を切断

        送受信タスクを停止し、接続を閉じます。複数回呼び出しても安全です。
        """
        if self._closed:
            return
        self._closed = True
        for task in (self._receive_task, self._send_task):
            if task is not None and not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
        self._receive_task = None
        self._send_task = None
        await self._discard_socket()
        logger.info("Live session closed")
