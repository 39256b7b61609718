"""Request routing, network access, sync and notifications."""
