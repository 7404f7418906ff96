"""
Eve Assistant — Audio Transcriber and Speech.

Voice notes are transcribed with OpenAI Whisper and then flow through the
same interpreter as typed messages. Replies to voice input are spoken back
with OpenAI text-to-speech.
"""

from __future__ import annotations

import logging
from pathlib import Path

from openai import AsyncOpenAI

from eve.config import settings

logger = logging.getLogger(__name__)

TRANSCRIBE_LANGUAGE = "en"
TTS_MODEL = "tts-1"
TTS_VOICE = "nova"
TTS_FORMAT = "opus"

_client: AsyncOpenAI | None = None


def _get_client() -> AsyncOpenAI:
    global _client
    if _client is None:
        _client = AsyncOpenAI(api_key=settings.OPENAI_API_KEY)
    return _client


async def transcribe_audio(file_path: str, language: str = TRANSCRIBE_LANGUAGE) -> str:
    """Transcribe an audio file using OpenAI Whisper.

    Args:
        file_path: Path to the audio file (OGG, MP3, etc.).
        language: ISO-639-1 hint passed to Whisper.

    Returns:
        Transcribed text string.

    Raises:
        Exception: If the Whisper API call fails.
    """
    try:
        with open(file_path, "rb") as audio_file:
            response = await _get_client().audio.transcriptions.create(
                model="whisper-1",
                file=audio_file,
                language=language,
            )
        text = response.text.strip()
        logger.info("Transcribed %d chars from %s", len(text), Path(file_path).name)
        return text
    except Exception as exc:
        logger.error("Whisper transcription failed for %s: %s", file_path, exc)
        raise


async def synthesize_speech(text: str) -> bytes:
    """Render reply text to Opus audio bytes (playable as a Telegram voice note)."""
    try:
        response = await _get_client().audio.speech.create(
            model=TTS_MODEL,
            voice=TTS_VOICE,
            input=text,
            response_format=TTS_FORMAT,
        )
        audio = response.content
        logger.info("Synthesized %d bytes of speech", len(audio))
        return audio
    except Exception as exc:
        logger.error("Speech synthesis failed: %s", exc)
        raise
