from __future__ import annotations

import signal
import threading

from django.core.management.base import BaseCommand

from modules.assignment.container import get_assignment_system


class Command(BaseCommand):
    help = "Repair assignment state and run the reconciler until interrupted."

    def add_arguments(self, parser):
        parser.add_argument(
            "--no-repair",
            action="store_true",
            help="Skip the startup consistency pass.",
        )

    def handle(self, *args, **options):
        system = get_assignment_system()
        stop = threading.Event()

        def _request_stop(signum, frame):
            self.stdout.write(f"Received signal {signum}, shutting down...")
            stop.set()

        signal.signal(signal.SIGINT, _request_stop)
        signal.signal(signal.SIGTERM, _request_stop)

        if options["no_repair"]:
            system.reconciler.start()
        else:
            report = system.initialize()
            self.stdout.write(
                "Startup repair: "
                f"workers_repaired={report.workers_repaired}, "
                f"queue_repaired={report.queue_repaired}, "
                f"orphans_assigned={report.orphans_assigned}, "
                f"orphans_queued={report.orphans_queued}, "
                f"errors={report.errors}"
            )

        self.stdout.write(self.style.SUCCESS("Reconciler running. Ctrl+C to stop."))
        stop.wait()
        system.shutdown()
        self.stdout.write(self.style.SUCCESS("Reconciler stopped."))
