"""VoiceQuiz: voice word-guessing game core and relay server."""

__version__ = "1.0.0"
