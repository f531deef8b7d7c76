from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand
from django.db import transaction

from inventory.models import Category, Item, Supplier, SupplierContact
from inventory.services import derive_stock_status

DEMO_PASSWORD_SUFFIX = "1234"


class Command(BaseCommand):
    help = "Seed demo warehouse data (one account per role, a supplier and a few items) for local development."

    @transaction.atomic
    def handle(self, *args, **options):
        User = get_user_model()

        users = {}
        for role in User.Role:
            local_part = role.value.lower()
            email = f"{local_part}@example.com"
            user, created = User.objects.get_or_create(
                username=email,
                defaults={
                    "email": email,
                    "name": role.label,
                    "role": role.value,
                    "is_staff": role == User.Role.ADMIN,
                    "is_superuser": role == User.Role.ADMIN,
                    "is_active": True,
                },
            )
            if created:
                user.set_password(f"{local_part}{DEMO_PASSWORD_SUFFIX}")
                user.save(update_fields=["password"])
            users[role] = user

        tools, _ = Category.objects.get_or_create(name="Tools", defaults={"description": "Hand and power tools"})
        packaging, _ = Category.objects.get_or_create(name="Packaging")

        supplier, _ = Supplier.objects.get_or_create(
            name="Demo Supplies",
            defaults={"email": "sales@demo-supplies.example", "phone": "+100000000", "payment_terms": "Net 30"},
        )
        supplier.categories.add(tools, packaging)
        SupplierContact.objects.get_or_create(
            supplier=supplier,
            email="contact@demo-supplies.example",
            defaults={"name": "Supplier Contact", "is_primary": True},
        )

        demo_items = [
            ("Claw Hammer", tools, 40, 10, "A1", "S1"),
            ("Cordless Drill", tools, 4, 5, "A1", "S2"),
            ("Shipping Box 40cm", packaging, 0, 50, "B3", "S1"),
        ]
        for name, category, stock_level, minimum_stock_level, aisle, shelf in demo_items:
            Item.objects.get_or_create(
                name=name,
                supplier=supplier,
                defaults={
                    "category": category,
                    "stock_level": stock_level,
                    "minimum_stock_level": minimum_stock_level,
                    "status": derive_stock_status(stock_level, minimum_stock_level),
                    "warehouse": "Main",
                    "aisle": aisle,
                    "shelf": shelf,
                    "created_by": users[User.Role.ADMIN],
                },
            )

        self.stdout.write(self.style.SUCCESS("Demo data seeded successfully."))
        self.stdout.write(
            "Credentials: " + ", ".join(f"{user.email}/{role.value.lower()}{DEMO_PASSWORD_SUFFIX}" for role, user in users.items())
        )
