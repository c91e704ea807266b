"""
TierPath Onboarding - Routers Package

FastAPI route handlers.

Routers:
- onboarding: wizard sessions, plans, recommendation, tier catalog, recovery
"""
