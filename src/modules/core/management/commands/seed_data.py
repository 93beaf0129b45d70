from __future__ import annotations

import random

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand

from modules.assignment.container import get_assignment_system
from modules.orders.dtos import PlaceOrderDTO
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.services import OrderService
from modules.staff.constants import WorkerRole
from modules.staff.models import Worker
from modules.venues.models import Branch, Manager, Venue


class Command(BaseCommand):
    help = "Seed database with a venue, branches, managers and waiters."

    def add_arguments(self, parser):
        parser.add_argument(
            "--orders",
            type=int,
            default=12,
            help="Number of orders to place through the assignment engine.",
        )

    def handle(self, *args, **options):
        random.seed(42)
        self.stdout.write("Seeding development data...")

        owner = self._seed_users()
        venue, branches = self._seed_venue(owner)
        waiters = self._seed_staff(owner, venue, branches)
        placed, queued = self._seed_orders(venue, branches, options["orders"])

        self.stdout.write(
            self.style.SUCCESS(
                "Seed completed: "
                f"branches={len(branches)}, "
                f"waiters={waiters}, "
                f"orders={placed}, "
                f"queued={queued}"
            )
        )

    def _seed_users(self):
        User = get_user_model()
        if not User.objects.filter(username="admin").exists():
            User.objects.create_superuser("admin", password="admin123")
        owner, created = User.objects.get_or_create(
            username="owner", defaults={"is_staff": True}
        )
        if created:
            owner.set_password("owner123")
            owner.save()
        return owner

    def _seed_venue(self, owner) -> tuple[Venue, list[Branch]]:
        self.stdout.write("Creating venue and branches...")
        venue, _ = Venue.objects.get_or_create(
            name="Spice Route Kitchen", defaults={"owner": owner}
        )
        branches = []
        for name in ("Indiranagar", "Koramangala"):
            branch, _ = Branch.objects.get_or_create(
                venue=venue, name=name, defaults={"owner": owner}
            )
            branches.append(branch)
        self.stdout.write(self.style.SUCCESS("Creating venue and branches... Done!"))
        return venue, branches

    def _seed_staff(self, owner, venue: Venue, branches: list[Branch]) -> int:
        self.stdout.write("Creating managers and waiters...")
        created = 0
        for b_index, branch in enumerate(branches, 1):
            manager, _ = Manager.objects.get_or_create(
                name=f"{branch.name} Floor Manager",
                venue=venue,
                defaults={"branch": branch, "created_by": owner},
            )
            for w_index in range(1, 4):
                _, was_created = Worker.objects.get_or_create(
                    staff_code=f"W{b_index:02d}{w_index:02d}",
                    defaults={
                        "name": f"{branch.name} Waiter {w_index}",
                        "role": WorkerRole.WAITER,
                        "venue": venue,
                        "branch": branch,
                        "manager": manager,
                    },
                )
                created += int(was_created)
        self.stdout.write(self.style.SUCCESS("Creating managers and waiters... Done!"))
        return created

    def _seed_orders(
        self, venue: Venue, branches: list[Branch], count: int
    ) -> tuple[int, int]:
        self.stdout.write("Placing orders...")
        service = OrderService(
            order_repository=OrderDjangoRepository(),
            assignment_engine=get_assignment_system().engine,
        )
        queued = 0
        for i in range(count):
            order = service.place_order(
                PlaceOrderDTO(
                    venue_id=venue.id,
                    branch_id=random.choice(branches).id,
                    table_number=str(random.randint(1, 20)),
                    customer_name=f"Guest {i + 1}",
                )
            )
            queued += int(order.is_queued)
        self.stdout.write(self.style.SUCCESS("Placing orders... Done!"))
        return count, queued
