import asyncio
from unittest.mock import MagicMock, patch

from google.api_core.exceptions import GoogleAPIError
from google.cloud import speech_v1p1beta1 as speech

from arab_exam import transcribe


class TestRecognitionConfig:
	def test_webm(self):
		config = transcribe._recognition_config("/tmp/a.webm")
		assert config.encoding == speech.RecognitionConfig.AudioEncoding.WEBM_OPUS
		assert config.sample_rate_hertz == 48000
		assert config.language_code == "ar-SA"

	def test_mp3(self):
		assert transcribe._recognition_config("x.MP3").encoding == speech.RecognitionConfig.AudioEncoding.MP3

	def test_wav_uses_header(self):
		config = transcribe._recognition_config("x.wav")
		assert config.encoding == speech.RecognitionConfig.AudioEncoding.ENCODING_UNSPECIFIED


class TestTranscribeAudio:
	def test_disabled_returns_empty(self, tmp_path):
		f = tmp_path / "a.webm"
		f.write_bytes(b"data")
		assert asyncio.run(transcribe.transcribe_audio(str(f))) == ""

	def test_missing_file(self, monkeypatch):
		monkeypatch.setattr(transcribe.settings, "google_speech_enabled", True)
		assert asyncio.run(transcribe.transcribe_audio("/nonexistent/a.webm")) == ""
		assert asyncio.run(transcribe.transcribe_audio(None)) == ""

	def test_joins_results(self, monkeypatch, tmp_path):
		monkeypatch.setattr(transcribe.settings, "google_speech_enabled", True)
		f = tmp_path / "a.webm"
		f.write_bytes(b"data")
		response = MagicMock()
		response.results = [
			MagicMock(alternatives=[MagicMock(transcript=" مرحبا ")]),
			MagicMock(alternatives=[MagicMock(transcript="بكم")]),
		]
		client = MagicMock()
		client.recognize.return_value = response
		with patch.object(transcribe.speech, "SpeechClient", return_value=client):
			assert asyncio.run(transcribe.transcribe_audio(str(f))) == "مرحبا بكم"

	def test_api_error_returns_empty(self, monkeypatch, tmp_path):
		monkeypatch.setattr(transcribe.settings, "google_speech_enabled", True)
		f = tmp_path / "a.ogg"
		f.write_bytes(b"data")
		client = MagicMock()
		client.recognize.side_effect = GoogleAPIError("quota")
		with patch.object(transcribe.speech, "SpeechClient", return_value=client):
			assert asyncio.run(transcribe.transcribe_audio(str(f))) == ""
