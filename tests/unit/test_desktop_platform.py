"""
Unit tests for the desktop voice platform, with sounddevice and the OpenAI
client replaced by mocks.
"""

import os
import sys
import unittest
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '../..')))

import numpy as np

from buddy.core.config import CaptureConfig
from buddy.core.errors import MicrophoneError, RecognitionError, TransientRecognitionError
from buddy.platform.desktop import DesktopVoicePlatform, WhisperRecognitionSession

RATE = 16000
BLOCK = 1600  # 0.1 s


class PortAudioError(Exception):
    pass


def make_config(**overrides):
    values = dict(recognizer="whisper", OPENAI_API_KEY="sk-test", sample_rate=RATE)
    values.update(overrides)
    with patch.dict(os.environ, {}, clear=True):
        return CaptureConfig(_env_file=None, **values)


def fake_sounddevice(devices=None):
    sd = MagicMock()
    sd.PortAudioError = PortAudioError
    sd.query_devices.return_value = devices if devices is not None else [{"max_input_channels": 1}]
    return sd


def loud(seconds=0.1):
    return np.full(int(RATE * seconds), 0.2, dtype=np.float32)


def quiet(seconds=0.1):
    return np.zeros(int(RATE * seconds), dtype=np.float32)


class TestCapabilities(unittest.TestCase):

    def test_secure_context(self):
        cases = {
            "https://api.openai.com/v1": True,
            "http://localhost:8000/v1": True,
            "http://127.0.0.1:8000/v1": True,
            "http://whisper.lan/v1": False,
        }
        for endpoint, secure in cases.items():
            platform = DesktopVoicePlatform(make_config(endpoint=endpoint))
            self.assertEqual(platform.is_secure_context(), secure, endpoint)

    def test_recognition_needs_whisper_and_key(self):
        self.assertTrue(DesktopVoicePlatform(make_config()).has_speech_recognition())
        self.assertFalse(DesktopVoicePlatform(make_config(recognizer="null")).has_speech_recognition())
        self.assertFalse(DesktopVoicePlatform(make_config(OPENAI_API_KEY="")).has_speech_recognition())

    def test_media_devices_need_portaudio(self):
        with patch("buddy.platform.desktop.load_sounddevice", return_value=None):
            self.assertFalse(DesktopVoicePlatform(make_config()).has_media_devices())
        with patch("buddy.platform.desktop.load_sounddevice", return_value=fake_sounddevice()):
            self.assertTrue(DesktopVoicePlatform(make_config()).has_media_devices())


class TestMicrophone(unittest.IsolatedAsyncioTestCase):

    def platform_with(self, sd):
        platform = DesktopVoicePlatform(make_config())
        platform._sd = sd
        return platform

    async def test_open_and_close(self):
        sd = fake_sounddevice()
        stream = sd.InputStream.return_value

        async with self.platform_with(sd).open_microphone():
            stream.start.assert_called_once()
            stream.close.assert_not_called()

        stream.close.assert_called_once()
        self.assertEqual(sd.InputStream.call_args.kwargs["samplerate"], RATE)

    async def test_permission_denied(self):
        sd = fake_sounddevice()
        sd.InputStream.side_effect = PortAudioError("Error opening InputStream: Permission denied")

        with self.assertRaises(MicrophoneError) as ctx:
            async with self.platform_with(sd).open_microphone():
                pass
        self.assertEqual(ctx.exception.kind, "permission")

    async def test_no_input_device(self):
        sd = fake_sounddevice(devices=[{"max_input_channels": 0}])
        sd.InputStream.side_effect = PortAudioError("Error querying device -1")

        with self.assertRaises(MicrophoneError) as ctx:
            async with self.platform_with(sd).open_microphone():
                pass
        self.assertEqual(ctx.exception.kind, "not_found")

    async def test_other_failure(self):
        sd = fake_sounddevice()
        sd.InputStream.side_effect = PortAudioError("Device unavailable")

        with self.assertRaises(MicrophoneError) as ctx:
            async with self.platform_with(sd).open_microphone():
                pass
        self.assertEqual(ctx.exception.kind, "other")


class TestWhisperSession(unittest.IsolatedAsyncioTestCase):

    async def asyncSetUp(self):
        self.platform = DesktopVoicePlatform(make_config(trailing_silence=0.45, no_speech_timeout=1.0))
        self.platform._sd = fake_sounddevice()
        self.session = self.platform.create_recognition_session("hi-IN")

    def feed(self, *blocks):
        for block in blocks:
            self.session._blocks.put_nowait(block)

    async def test_collects_until_trailing_silence(self):
        self.feed(quiet(), loud(), loud(), *[quiet() for _ in range(5)])

        audio = await self.session._collect()

        # leading silence dropped, trailing silence kept
        self.assertEqual(len(audio), 7 * BLOCK)

    async def test_no_speech_times_out(self):
        self.feed(*[quiet() for _ in range(15)])

        with self.assertRaises(TransientRecognitionError) as ctx:
            await self.session._collect()
        self.assertEqual(ctx.exception.code, "no-speech")

    async def test_stop_aborts(self):
        self.feed(loud())
        await self.session.stop()

        with self.assertRaises(TransientRecognitionError) as ctx:
            await self.session._collect()
        self.assertEqual(ctx.exception.code, "aborted")

    async def test_transcribe_sends_wav_with_language(self):
        client = MagicMock()
        client.audio.transcriptions.create.return_value = SimpleNamespace(text="  namaste  ")
        self.platform._client = client

        text = await self.session._transcribe(loud(0.5))

        self.assertEqual(text, "namaste")
        kwargs = client.audio.transcriptions.create.call_args.kwargs
        self.assertEqual(kwargs["language"], "hi")
        self.assertEqual(kwargs["model"], "whisper-1")
        name, payload = kwargs["file"]
        self.assertEqual(name, "utterance.wav")
        self.assertEqual(payload[:4], b"RIFF")

    async def test_empty_transcript_is_no_speech(self):
        client = MagicMock()
        client.audio.transcriptions.create.return_value = SimpleNamespace(text="")
        self.platform._client = client

        with self.assertRaises(TransientRecognitionError) as ctx:
            await self.session._transcribe(loud())
        self.assertEqual(ctx.exception.code, "no-speech")

    async def test_stream_permission_error_is_not_allowed(self):
        self.platform._sd.InputStream.side_effect = PortAudioError("Permission denied")

        with self.assertRaises(RecognitionError) as ctx:
            await self.session.run()
        self.assertTrue(ctx.exception.is_permission_revoked)

    def test_session_type(self):
        self.assertIsInstance(self.session, WhisperRecognitionSession)


if __name__ == "__main__":
    unittest.main()
