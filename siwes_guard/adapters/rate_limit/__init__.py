"""Rate limiting adapters.

The edge pipeline depends on ``AbstractRateLimiter`` only, so the in-process
store can later be replaced by a shared one (e.g. Redis) for multi-instance
deployments without touching the guards.
"""
