"""Journal entries produced from transcribed calls."""
