"""VoiceQuiz test suite."""
