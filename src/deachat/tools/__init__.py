"""Tool server integration: registry snapshot, bootstrap and invocation."""
