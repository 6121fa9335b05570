"""Authorization policy tests — pure function, no database.

Learn: The policy only needs something with `.role` and `.tenant_id`, so a
SimpleNamespace stands in for an Identity row.
"""

import uuid
from types import SimpleNamespace

import pytest

from schoolgate.auth.policy import Action, Decision, DenyReason, authorize

T1 = uuid.uuid4()
T2 = uuid.uuid4()


def principal(role, tenant_id=None):
    return SimpleNamespace(role=role, tenant_id=tenant_id)


SUPER = principal("super_admin")
SCHOOL_T1 = principal("school_admin", T1)


# ═══════════════════════════════════════════════════════════
# super_admin
# ═══════════════════════════════════════════════════════════


@pytest.mark.parametrize("action", list(Action))
def test_super_admin_allowed_everything_on_any_tenant(action):
    decision = authorize(SUPER, action, T2)
    assert decision.allowed
    assert decision.tenant_filter == T2


def test_super_admin_without_tenant_is_unbounded():
    decision = authorize(SUPER, Action.VIEW)
    assert decision == Decision.allow(None)


# ═══════════════════════════════════════════════════════════
# school_admin views
# ═══════════════════════════════════════════════════════════


def test_school_admin_views_own_tenant():
    decision = authorize(SCHOOL_T1, Action.VIEW, T1)
    assert decision.allowed
    assert decision.tenant_filter == T1


def test_school_admin_view_without_tenant_is_narrowed_to_own():
    decision = authorize(SCHOOL_T1, Action.VIEW)
    assert decision.allowed
    assert decision.tenant_filter == T1


def test_school_admin_other_tenant_is_wrong_tenant():
    decision = authorize(SCHOOL_T1, Action.VIEW, T2)
    assert not decision.allowed
    assert decision.reason is DenyReason.WRONG_TENANT
    assert decision.tenant_filter is None


def test_school_admin_before_onboarding_has_no_scope():
    decision = authorize(principal("school_admin"), Action.VIEW)
    assert decision.reason is DenyReason.WRONG_TENANT


# ═══════════════════════════════════════════════════════════
# school_admin mutations + escape hatch
# ═══════════════════════════════════════════════════════════


@pytest.mark.parametrize("action", [Action.CREATE, Action.UPDATE, Action.DELETE])
@pytest.mark.parametrize("tenant", [T1, T2, None])
def test_school_admin_mutations_denied_regardless_of_tenant(action, tenant):
    decision = authorize(SCHOOL_T1, action, tenant)
    assert not decision.allowed
    assert decision.reason is DenyReason.ROLE_INSUFFICIENT


def test_full_access_flag_allows_delete_in_own_tenant():
    decision = authorize(SCHOOL_T1, Action.DELETE, T1, school_admin_full_access=True)
    assert decision.allowed
    assert decision.tenant_filter == T1


def test_full_access_flag_keeps_tenant_boundary():
    decision = authorize(SCHOOL_T1, Action.DELETE, T2, school_admin_full_access=True)
    assert decision.reason is DenyReason.WRONG_TENANT


# ═══════════════════════════════════════════════════════════
# Missing identity / unknown role
# ═══════════════════════════════════════════════════════════


def test_missing_identity_is_no_identity():
    decision = authorize(None, Action.VIEW, T1)
    assert decision.reason is DenyReason.NO_IDENTITY


def test_unknown_role_is_role_insufficient():
    decision = authorize(principal("teacher", T1), Action.VIEW, T1)
    assert decision.reason is DenyReason.ROLE_INSUFFICIENT


def test_action_accepts_plain_strings():
    assert authorize(SCHOOL_T1, "view").allowed
    assert not authorize(SCHOOL_T1, "delete").allowed


def test_decisions_are_deterministic():
    first = authorize(SCHOOL_T1, Action.VIEW, T2)
    for _ in range(5):
        assert authorize(SCHOOL_T1, Action.VIEW, T2) == first
