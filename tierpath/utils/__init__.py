"""
TierPath Onboarding - Utilities Package
"""
