"""Service adapters."""
