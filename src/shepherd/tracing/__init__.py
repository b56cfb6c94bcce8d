"""Session trace synthesis: timestamps, identity, pairing, assembly, export."""
