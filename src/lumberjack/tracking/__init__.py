"""Runtime observation: errors, sessions, replay and logging capture."""
