"""Core components: configuration, events, errors and uploaders."""
