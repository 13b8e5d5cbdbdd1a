"""Data models for saynote: blocks, pages, edit intents and configuration."""
