# clinic/management/commands/ensure_test_users.py
from django.core.management.base import BaseCommand
from django.contrib.auth.hashers import make_password
from clinic.models import User

TEST_SET = [
    ("patient1", User.ROLE_PATIENT),
    ("doctor1", User.ROLE_DOCTOR),
    ("pharmacist1", User.ROLE_PHARMACIST),
    ("reception1", User.ROLE_RECEPTIONIST),
    ("lab1", User.ROLE_LAB_ASSISTANT),
    ("admin1", User.ROLE_ADMIN),
]


class Command(BaseCommand):
    help = "Ensure one test user per role exists with password=123456 (idempotent)."

    def handle(self, *args, **opts):
        for username, role in TEST_SET:
            u, created = User.objects.get_or_create(
                username=username,
                defaults={"role": role, "password": make_password("123456"), "is_active": True},
            )
            if not created:
                # reset password, role and active flag
                u.password = make_password("123456")
                u.role = role
                u.is_active = True
                u.save(update_fields=["password", "role", "is_active"])
            self.stdout.write(self.style.SUCCESS(f"ok: {username} ({role})"))
        self.stdout.write(self.style.SUCCESS("All test users ensured."))
