"""Persistence: migration, obfuscation codec, repository, debouncing, autosave and import/export."""
