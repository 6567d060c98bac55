from django.core.management.base import BaseCommand, CommandError
from django.utils import timezone
from django.utils.dateparse import parse_datetime

from common.utils import Box
from services.matching import dispatch_area


class Command(BaseCommand):
    help = "Dispatch available drivers to open ride requests inside an area."

    def add_arguments(self, parser):
        parser.add_argument(
            "--nw",
            type=float,
            nargs=2,
            required=True,
            metavar=("X", "Y"),
            help="Northwest corner of the area.",
        )
        parser.add_argument(
            "--se",
            type=float,
            nargs=2,
            required=True,
            metavar=("X", "Y"),
            help="Southeast corner of the area.",
        )
        parser.add_argument(
            "--at",
            type=str,
            default=None,
            help="ISO timestamp recorded on the dispatches (default: now).",
        )

    def handle(self, *args, **options):
        at = None
        if options["at"]:
            at = parse_datetime(options["at"])
            if at is None:
                raise CommandError(f"Invalid --at timestamp: {options['at']}")
            if timezone.is_naive(at):
                at = timezone.make_aware(at)

        box = Box.from_corners(*options["nw"], *options["se"])
        result = dispatch_area(box, at)

        if not result.success:
            raise CommandError(f"Dispatch failed ({result.error_code}): {result.message}")

        for record in result.assignments:
            self.stdout.write(f"request {record.request_id} -> driver {record.driver_id}")

        self.stdout.write(
            self.style.SUCCESS(
                f"Dispatched {len(result.assignments)} driver(s) in {result.extra['attempts']} attempt(s)."
            )
        )
