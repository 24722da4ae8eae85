"""Provider API key pool: validation, storage, bulk import, liveness probes and stats."""
