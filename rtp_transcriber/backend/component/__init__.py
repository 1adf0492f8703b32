"""Frame retention and debug audio capture."""
