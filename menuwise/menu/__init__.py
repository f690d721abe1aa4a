"""
Menu extraction.

Responsibilities:
- Convert a menu photo into structured dish records via a vision model.
- Validate extracted items (non-empty name, positive price).
- Degrade to a fixed fallback menu instead of ever failing.
"""
