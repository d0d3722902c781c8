from __future__ import annotations

from django.core.management.base import BaseCommand, CommandError

from membership.services import MemberUploadError, import_members
from membership.spreadsheets import SpreadsheetError, read_spreadsheet


class Command(BaseCommand):
    help = 'Import (or update) chapter members from a roster spreadsheet.'

    def add_arguments(self, parser):
        parser.add_argument('--xlsx', required=True, help='Path to the roster spreadsheet')

    def handle(self, *args, **options):
        try:
            rows = read_spreadsheet(options['xlsx'])
            summary = import_members(rows)
        except (MemberUploadError, SpreadsheetError) as exc:
            raise CommandError(str(exc)) from exc

        for error in summary.errors:
            self.stderr.write(error)
        self.stdout.write(self.style.SUCCESS(f'Import summary: {summary.as_dict()}'))
