"""
Client side of Be Better.

The client owns the local ledger (the user's xp, coins, tasks and items),
persists it to durable storage, and optionally mirrors changes to the API
server through the sync bridge.
"""
