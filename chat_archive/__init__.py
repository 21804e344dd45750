"""Chat Archive: compress tabletop RPG chat logs into searchable session archives."""

__version__ = "0.1.0"
