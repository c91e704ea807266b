"""
TierPath Onboarding

Decision core for SaaS onboarding: tier recommendation, tier permission
mapping, step validation and failure recovery.
"""

__version__ = "0.1.0"
