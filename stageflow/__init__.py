"""Stage transition workflow: approval gates, optimistic state and side-channel effects."""
