"""saynote: voice-command editing of hierarchical block documents."""

__version__ = "0.1.0"
