"""
Tenant membership engine

Central identities, per-tenant identities, invitations and notification fan-out.
"""

__version__ = "1.0.0"
