"""
FleetPass - Identity and Access Management

Account registration, email verification, password reset, login with
signed session tokens, and role-based permissions for the FleetPass
rental platform.
"""

__version__ = "1.0.0"
