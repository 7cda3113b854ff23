"""External services used by worker tasks."""
