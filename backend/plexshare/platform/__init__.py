"""Cross-cutting platform helpers."""
