"""User call preferences."""
