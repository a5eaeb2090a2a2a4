"""HTTP API for ollachat."""
