"""
Service layer

Client side:
- Credential broker and completion client (relay HTTP)
- Realtime session, event routing and the peer transport contract
- Transcription sources, speech output and history sinks

Server side:
- OpenAI relay service (chat completions, realtime client secrets)
"""
