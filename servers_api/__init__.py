"""Game servers HTTP API."""
