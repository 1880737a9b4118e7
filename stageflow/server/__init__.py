"""Practice service standing in for the authoritative backend."""
