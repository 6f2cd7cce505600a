"""Tests for the subscription entitlement gate."""

import pytest

from schola_api.policy.entitlements import (
    ATTENDANCE_WRITE,
    EXAMS_WRITE,
    EntitlementDenied,
    EntitlementGate,
)


def test_active_subscription_with_flag(db, school):
    gate = EntitlementGate(db)
    assert gate.can_write(school.id, ATTENDANCE_WRITE)
    assert gate.can_write(school.id, EXAMS_WRITE)


def test_trial_follows_flags(db, make_tenant):
    tenant = make_tenant("trial-school", subscription_status="TRIAL", entitlements_json={ATTENDANCE_WRITE: True})
    gate = EntitlementGate(db)
    assert gate.can_write(tenant.id, ATTENDANCE_WRITE)
    assert not gate.can_write(tenant.id, EXAMS_WRITE)


@pytest.mark.parametrize("status", ["EXPIRED", "CANCELED"])
def test_inactive_subscription_blocks_all_writes(db, make_tenant, status):
    tenant = make_tenant(f"{status.lower()}-school", subscription_status=status)

    with pytest.raises(EntitlementDenied) as exc:
        EntitlementGate(db).check_write(tenant.id, ATTENDANCE_WRITE)
    assert exc.value.status_code == 402


def test_missing_flag_is_forbidden(db, make_tenant):
    tenant = make_tenant("no-flags", entitlements_json=None)

    with pytest.raises(EntitlementDenied) as exc:
        EntitlementGate(db).check_write(tenant.id, EXAMS_WRITE)
    assert exc.value.status_code == 403
    assert EXAMS_WRITE in exc.value.message


def test_unknown_tenant(db):
    assert not EntitlementGate(db).can_write(424242, ATTENDANCE_WRITE)
