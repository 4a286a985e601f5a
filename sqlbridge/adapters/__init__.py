"""Native driver implementations."""
