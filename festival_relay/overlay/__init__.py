"""Per-session overlay state and its text rendering for the glasses."""
