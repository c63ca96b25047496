"""Speech synthesis capability."""
