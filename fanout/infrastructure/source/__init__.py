"""Source adaptors: static, HTTP API and SQL."""
