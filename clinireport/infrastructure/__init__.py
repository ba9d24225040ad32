"""Infrastructure layer for CliniReport: configuration, settings, logging and report export."""
