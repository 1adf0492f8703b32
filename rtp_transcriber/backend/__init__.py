"""Frame reception, continuity buffering and recognition session management."""
