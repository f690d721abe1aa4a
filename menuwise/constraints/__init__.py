"""
Dietary constraints.

Responsibilities:
- Normalize free-text dietary tags.
- Split tags into hard-core constraints, negative ingredient keys and soft preferences.
- Deterministically remove dishes that violate hard constraints.
"""
