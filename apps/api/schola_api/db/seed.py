"""Seed data for development and testing."""

from sqlalchemy.orm import Session

from schola_api.auth.api_key import compute_key_digest, compute_key_prefix
from schola_api.models import APIKey, Student, Tenant
from schola_api.policy.entitlements import ATTENDANCE_WRITE, EXAMS_WRITE

DEMO_API_KEY = "sk_demo_schola_key_12345"

DEMO_CLASSES = {
    "form-1a": [
        ("stu-1a-01", "ADM001", "Amina", "Otieno"),
        ("stu-1a-02", "ADM002", "Brian", "Kamau"),
        ("stu-1a-03", "ADM003", "Cynthia", "Wanjiru"),
    ],
    "form-1b": [
        ("stu-1b-01", "ADM101", "David", "Mwangi"),
        ("stu-1b-02", "ADM102", "Esther", "Achieng"),
    ],
}


def seed_tenants(db: Session) -> Tenant:
    """Seed the demo school with an API key and write entitlements."""
    demo_tenant = db.query(Tenant).filter(Tenant.label == "demo").first()
    if demo_tenant:
        print(f"✓ Demo tenant already exists: {demo_tenant.label}")
        return demo_tenant

    demo_tenant = Tenant(
        label="demo",
        status="active",
        subscription_status="ACTIVE",
        entitlements_json={ATTENDANCE_WRITE: True, EXAMS_WRITE: True},
    )
    db.add(demo_tenant)
    db.flush()

    db.add(
        APIKey(
            tenant_id=demo_tenant.id,
            prefix=compute_key_prefix(DEMO_API_KEY),
            digest=compute_key_digest(DEMO_API_KEY),
            label="Default API Key",
            is_active=True,
        )
    )
    db.commit()
    print(f"✓ Created demo tenant: {demo_tenant.label} (ID: {demo_tenant.id})")
    print(f"  API Key: {DEMO_API_KEY}")
    return demo_tenant


def seed_students(db: Session, tenant: Tenant):
    """Seed demo class rosters."""
    for class_id, students in DEMO_CLASSES.items():
        for student_id, admission_no, first_name, last_name in students:
            if db.query(Student).filter(Student.tenant_id == tenant.id, Student.id == student_id).first():
                continue
            db.add(
                Student(
                    id=student_id,
                    tenant_id=tenant.id,
                    class_id=class_id,
                    admission_no=admission_no,
                    first_name=first_name,
                    last_name=last_name,
                    is_active=True,
                )
            )
        print(f"✓ Seeded class roster: {class_id} ({len(students)} students)")
    db.commit()


def seed_all(db: Session):
    """Seed all data."""
    print("Seeding database...")
    tenant = seed_tenants(db)
    seed_students(db, tenant)
    print("✓ Seeding complete!")
