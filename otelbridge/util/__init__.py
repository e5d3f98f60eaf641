"""SQL classification and URL helpers."""
