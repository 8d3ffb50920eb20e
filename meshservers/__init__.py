"""Chat and content servers for a source-routed drone mesh network."""

__version__ = "0.1.0"