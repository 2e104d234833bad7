"""Core services: extraction engine, payload decoding, browser automation, reconciliation."""
