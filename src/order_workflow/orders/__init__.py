"""Order aggregate: rules and factory."""
