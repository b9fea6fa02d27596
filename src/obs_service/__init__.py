"""
obs_service

Ingestion gateway for obs events: authenticates producers, applies
server-side defaults, persists events and serves the grouped and detail
read views.
"""
