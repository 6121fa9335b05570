"""Auth event type constants.

Learn: Centralizing event types as constants prevents typos and
makes it easy to discover every event the auth core records.
"""

# ─── Identity lifecycle ──────────────────────────────────

IDENTITY_REGISTERED = "identity.registered"
IDENTITY_MATERIALIZED = "identity.materialized"
IDENTITY_LOGGED_IN = "identity.logged_in"
IDENTITY_ONBOARDED = "identity.onboarded"
IDENTITY_TENANT_RESET = "identity.tenant_reset"
IDENTITY_PROFILE_UPDATED = "identity.profile_updated"
IDENTITY_PASSWORD_CHANGED = "identity.password_changed"
IDENTITY_DEACTIVATED = "identity.deactivated"

# ─── Sessions ────────────────────────────────────────────

SESSION_ROTATED = "session.rotated"
IDENTITY_LOGGED_OUT = "identity.logged_out"


def identity_stream(identity_id) -> str:
    return f"identity:{identity_id}"
