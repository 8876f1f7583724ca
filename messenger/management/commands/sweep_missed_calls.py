from django.core.management.base import BaseCommand, CommandError

from messenger.constants import MISSED_TIMEOUT_SECONDS
from messenger.views import calls


class Command(BaseCommand):
    help = "Mark calls that have been ringing longer than the timeout as missed and notify the callees."

    def add_arguments(self, parser):
        parser.add_argument(
            "--timeout-seconds",
            type=int,
            default=MISSED_TIMEOUT_SECONDS,
            help="Ringing age after which a call counts as missed",
        )

    def handle(self, *args, **options):
        if not calls.firestore_service.is_available():
            raise CommandError("Firebase Firestore is not configured")

        updated = calls.sweep_missed_calls(options["timeout_seconds"])
        self.stdout.write(self.style.SUCCESS(f"Marked {updated} call(s) as missed"))
