"""Voice Gateway: ElevenLabs voice-cloning / TTS proxy with agent management."""

__version__ = "2.0.0"
