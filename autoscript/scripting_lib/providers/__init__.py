"""Adapters for the external report engine and messaging primitive."""
