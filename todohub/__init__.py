"""todohub: unified project/session view over AI coding-assistant todo stores."""

__version__ = "0.1.0"
