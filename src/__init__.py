"""Nostr Media Observatory - time-navigable media feed for Nostr."""

__version__ = "0.1.0"
