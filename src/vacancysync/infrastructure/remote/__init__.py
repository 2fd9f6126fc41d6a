"""Remote reservation store clients."""
