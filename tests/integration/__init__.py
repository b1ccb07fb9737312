"""Integration tests driving the json-immune CLI in-process with scripted repair backends."""
