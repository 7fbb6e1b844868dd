"""Per-user recurring call triggers."""
