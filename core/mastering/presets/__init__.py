"""Bundled ProcessingSettings presets (YAML), read by core/mastering/_preset_loader.py."""
