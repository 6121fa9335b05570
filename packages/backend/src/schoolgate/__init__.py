"""SchoolGate — authentication & authorization core for a multi-tenant
school administration backend.

Resolves logins across the canonical identity store and legacy identity
stores, issues and rotates signed session tokens, and decides which
school (tenant) data each request may see.
"""

__version__ = "0.1.0"
