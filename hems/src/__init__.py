"""
Home energy management simulation engine.

Periodically simulates every dwelling's solar generation, household load,
battery and grid flows, persists the resulting device states through the
device repository, and fans the results out to real-time subscribers.

CHANGELOG:
- 2026-10-16: Initial creation

TODO:
- None
"""
