"""State layer.

This package is the single place where remote key-group snapshots and local
optimistic updates are merged into the vehicle state every client renders.
"""
