"""
Retell - timed story retelling practice.

Runs a listen → prepare → retell → score exercise: a story is narrated,
the speaker prepares silently, retells it aloud, and the captured
transcript is scored against the story's keywords and content words.
"""

__version__ = "0.1.0"
