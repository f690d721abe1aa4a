"""
Menu photo selection.

Responsibilities:
- Score candidate photos on how menu-like their metadata looks.
- Escalate uncertain cases to a generative visual judge.
- Return a ranked candidate list when neither stage is confident.
"""
