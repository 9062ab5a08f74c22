import asyncio
import base64
import json

import pytest

from remember_game.config_models import LiveAPIConfig
from remember_game.events import (
    AudioChunk,
    Interrupted,
    SessionClosed,
    SessionError,
    SessionOpened,
    Transcription,
    TranscriptionSide,
)
from remember_game.live_client import (
    GeminiLiveClient,
    build_setup_message,
    encode_media_message,
    encode_sync_message,
    parse_server_message,
    system_sync_text,
)
from remember_game.models import MediaKind, OutboundMediaChunk


class _FakeWebSocket:
    def __init__(self, setup_reply=None, incoming=(), hold_open=False):
        self.setup_reply = setup_reply if setup_reply is not None else {"setupComplete": {}}
        self.incoming = list(incoming)
        self.hold_open = hold_open
        self.sent = []
        self.close_calls = 0

    async def send(self, message):
        self.sent.append(json.loads(message))

    async def recv(self):
        return json.dumps(self.setup_reply)

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for message in self.incoming:
            yield message
        if self.hold_open:
            await asyncio.Event().wait()

    async def close(self):
        self.close_calls += 1


class _Connector:
    def __init__(self, ws):
        self.ws = ws
        self.urls = []

    async def __call__(self, url, **kwargs):
        self.urls.append(url)
        return self.ws


def _audio_b64(data):
    return base64.b64encode(data).decode("ascii")


def test_setup_message_requests_audio_and_transcriptions() -> None:
    message = build_setup_message(LiveAPIConfig(), "rules")["setup"]

    assert message["generationConfig"]["responseModalities"] == ["AUDIO"]
    voice = message["generationConfig"]["speechConfig"]["voiceConfig"]["prebuiltVoiceConfig"]
    assert voice["voiceName"] == "Puck"
    assert message["systemInstruction"]["parts"][0]["text"] == "rules"
    assert "inputAudioTranscription" in message
    assert "outputAudioTranscription" in message


def test_media_message_is_base64_with_mime_type() -> None:
    chunk = OutboundMediaChunk(payload=b"\x01\x02", kind=MediaKind.AUDIO, mime_type="audio/pcm;rate=16000")

    media = encode_media_message(chunk)["realtimeInput"]["mediaChunks"][0]

    assert media == {"mimeType": "audio/pcm;rate=16000", "data": "AQI="}


def test_sync_message_wraps_text_once() -> None:
    assert system_sync_text("Letter is now K.") == "[SYSTEM: Letter is now K.]"
    assert system_sync_text("[SYSTEM: already]") == "[SYSTEM: already]"

    content = encode_sync_message("Letter is now K.")["clientContent"]
    assert content["turns"][0]["parts"][0]["text"] == "[SYSTEM: Letter is now K.]"
    assert content["turnComplete"] is True


def test_parse_server_message_orders_events() -> None:
    data = {
        "serverContent": {
            "interrupted": True,
            "outputTranscription": {"text": "Elephant"},
            "inputTranscription": {"text": "apple"},
            "modelTurn": {"parts": [{"inlineData": {"mimeType": "audio/pcm", "data": _audio_b64(b"\x00\x01")}}]},
        }
    }

    assert parse_server_message(data) == [
        AudioChunk(b"\x00\x01"),
        Transcription(TranscriptionSide.INPUT, "apple"),
        Transcription(TranscriptionSide.OUTPUT, "Elephant"),
        Interrupted(),
    ]


@pytest.mark.parametrize("data", [{}, {"setupComplete": {}}, {"serverContent": {"turnComplete": True}}])
def test_parse_server_message_ignores_other_messages(data) -> None:
    assert parse_server_message(data) == []


def test_open_sends_setup_and_publishes_events_in_order() -> None:
    async def _exercise() -> None:
        ws = _FakeWebSocket(incoming=[
            "not json",
            json.dumps({"serverContent": {"inputTranscription": {"text": "apple"}}}),
            json.dumps({"serverContent": {"modelTurn": {"parts": [{"inlineData": {"data": _audio_b64(b"\x00\x00")}}]}}}),
        ])
        connector = _Connector(ws)
        events = []
        client = GeminiLiveClient("secret", LiveAPIConfig(), events.append, connect=connector)

        await client.open()
        await asyncio.sleep(0.01)

        assert connector.urls[0].endswith("?key=secret")
        assert "setup" in ws.sent[0]
        assert events == [
            SessionOpened(),
            Transcription(TranscriptionSide.INPUT, "apple"),
            AudioChunk(b"\x00\x00"),
            SessionClosed("connection closed by server"),
        ]
        await client.close()

    asyncio.run(_exercise())


def test_outbound_messages_are_sent_in_order() -> None:
    async def _exercise() -> None:
        ws = _FakeWebSocket(hold_open=True)
        client = GeminiLiveClient("k", LiveAPIConfig(), lambda event: None, connect=_Connector(ws))
        await client.open()

        client.send_system_sync("The current target letter is now A.")
        client.send_media(OutboundMediaChunk(b"\xff\xd8", MediaKind.IMAGE, "image/jpeg"))
        await asyncio.sleep(0.01)

        assert [list(message)[0] for message in ws.sent] == ["setup", "clientContent", "realtimeInput"]
        await client.close()

    asyncio.run(_exercise())


def test_unexpected_setup_reply_raises_connection_error() -> None:
    async def _exercise() -> None:
        ws = _FakeWebSocket(setup_reply={"error": "bad key"})
        events = []
        client = GeminiLiveClient("k", LiveAPIConfig(), events.append, connect=_Connector(ws))

        with pytest.raises(ConnectionError):
            await client.open()
        assert events == []
        assert ws.close_calls == 1

    asyncio.run(_exercise())


def test_close_is_idempotent_and_silences_events() -> None:
    async def _exercise() -> None:
        ws = _FakeWebSocket(hold_open=True)
        events = []
        client = GeminiLiveClient("k", LiveAPIConfig(), events.append, connect=_Connector(ws))
        await client.open()

        await client.close()
        await client.close()
        client.send_system_sync("ignored")

        assert ws.close_calls == 1
        assert events == [SessionOpened()]

    asyncio.run(_exercise())


@pytest.mark.parametrize(
    "parts",
    [
        [{"inlineData": {"data": "abc"}}],
        ["oops"],
        [{"inlineData": "oops"}],
    ],
)
def test_parse_server_message_drops_bad_audio_parts(parts) -> None:
    data = {"serverContent": {"modelTurn": {"parts": parts}, "inputTranscription": {"text": "apple"}}}

    assert parse_server_message(data) == [Transcription(TranscriptionSide.INPUT, "apple")]


def test_malformed_frame_does_not_end_session() -> None:
    async def _exercise() -> None:
        ws = _FakeWebSocket(incoming=[
            json.dumps({"serverContent": {"modelTurn": {"parts": [{"inlineData": {"data": "abc"}}]}}}),
            json.dumps({"serverContent": {"modelTurn": {"parts": ["oops"]}}}),
            json.dumps({"serverContent": {"inputTranscription": {"text": "apple"}}}),
        ], hold_open=True)
        events = []
        client = GeminiLiveClient("k", LiveAPIConfig(), events.append, connect=_Connector(ws))

        await client.open()
        await asyncio.sleep(0.01)

        assert not any(isinstance(event, SessionError) for event in events)
        assert events == [SessionOpened(), Transcription(TranscriptionSide.INPUT, "apple")]
        await client.close()

    asyncio.run(_exercise())
