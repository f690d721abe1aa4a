"""
Generative service boundary.

Responsibilities:
- Manage Groq API configuration and credentials.
- Submit a prompt (optionally with an image) and receive JSON-object text.
- Salvage JSON wrapped in stray prose.
- Signal an unavailable service so callers can take their fallback path.
"""
