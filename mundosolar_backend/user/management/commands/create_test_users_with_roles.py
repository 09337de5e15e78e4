from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand
from django.db import transaction

from main.models import UserRole


class Command(BaseCommand):
    help = (
        "Create one staff user per role (dry-run by default). "
        "Use --execute to actually create."
    )

    def add_arguments(self, parser):
        parser.add_argument(
            "--password",
            dest="password",
            default="Test1234!",
            help="Password to set for created users.",
        )
        parser.add_argument(
            "--domain",
            dest="domain",
            default="mundosolar.local",
            help="Email domain for the generated accounts.",
        )
        parser.add_argument(
            "--execute",
            action="store_true",
            dest="execute",
            help="Actually create users instead of dry-run.",
        )

    def handle(self, *args, **options):
        User = get_user_model()
        password = options["password"]
        domain = options["domain"]

        planned = [
            {
                "email": f"test_{role.value}@{domain}",
                "full_name": f"Test {role.label}",
                "role": role.value,
            }
            for role in UserRole
        ]

        self.stdout.write(
            self.style.MIGRATE_HEADING("Planned user creations (dry-run):")
        )
        for p in planned:
            exists = User.objects.filter(email=p["email"]).exists()
            self.stdout.write(
                f" - {p['email']} (role: {p['role']}) {'[exists: SKIP]' if exists else ''}"
            )

        if not options["execute"]:
            self.stdout.write(
                self.style.SUCCESS(
                    "Dry-run complete. Re-run with --execute to actually create users."
                )
            )
            return

        created = []
        skipped = []
        with transaction.atomic():
            for p in planned:
                if User.objects.filter(email=p["email"]).exists():
                    skipped.append(p["email"])
                    continue
                User.objects.create_user(
                    username=p["email"],
                    email=p["email"],
                    full_name=p["full_name"],
                    password=password,
                    role=p["role"],
                    is_staff=p["role"] == UserRole.ADMIN,
                )
                created.append(p["email"])

        self.stdout.write(self.style.SUCCESS(f"Created: {created}"))
        if skipped:
            self.stdout.write(
                self.style.WARNING(f"Skipped (already existed): {skipped}")
            )
