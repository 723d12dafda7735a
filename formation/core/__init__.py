"""Core domain types, shared state, events and the two per-tick orchestrators."""
