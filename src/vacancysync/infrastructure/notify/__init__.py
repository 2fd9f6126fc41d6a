"""Chat notification clients."""
