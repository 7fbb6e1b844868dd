"""Call records: storage, caller resolution and outbound dispatch."""
