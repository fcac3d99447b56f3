"""Configuration helpers for gemchat (paths and user generation settings)."""
