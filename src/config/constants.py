"""Shared application constants.

Constants used by multiple modules are defined here to ensure consistency.
Module-specific constants should be defined as class-level attributes on
their respective service classes instead.
"""

# Public relays queried when NOSTR_RELAYS is not set
DEFAULT_RELAYS = (
    "wss://relay.damus.io",
    "wss://nos.lol",
    "wss://relay.nostr.band",
    "wss://nostr.wine",
    "wss://relay.snort.social",
    "wss://relay.primal.net",
    "wss://purplepag.es",
)

# Nostr event kinds
KIND_METADATA = 0
KIND_TEXT_NOTE = 1

# Snapshot file naming (used by snapshot_repository.py and cli)
ARCHIVE_FILE_SUFFIX = ".json"
WINDOW_FILE_SUFFIX = "-window.json"

# Dedup key sentinel for media not tied to a post
NO_EVENT_SENTINEL = "no-event"

# Category assigned to legacy bare-URL snapshot entries and unscored images
DEFAULT_IMAGE_CATEGORY = "art"

MS_PER_MINUTE = 60 * 1000
