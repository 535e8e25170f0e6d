"""Client side of the chat engine: HTTP API client and conversation session."""
