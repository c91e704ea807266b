"""
TierPath Onboarding - Schemas Package

Pydantic request/response schemas.
"""
