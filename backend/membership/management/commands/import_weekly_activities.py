from __future__ import annotations

from pathlib import Path

from django.conf import settings
from django.core.management.base import BaseCommand, CommandError

from membership.models import ColumnMappingTemplate
from membership.services import (
    ActivityUploadError,
    default_mapping_template,
    ingest_weekly_activities,
    parse_activity_date,
)
from membership.spreadsheets import SpreadsheetError, read_spreadsheet


class Command(BaseCommand):
    help = 'Import a weekly activity spreadsheet and rebuild that week\'s report.'

    def add_arguments(self, parser):
        parser.add_argument('--xlsx', required=True, help='Path to the weekly export (.xlsx or .csv)')
        parser.add_argument('--date', required=True, help='Activity date, YYYYMMDD')
        parser.add_argument('--user', default='admin', help='Recorded as uploaded_by')
        parser.add_argument('--template', help='Name of a saved column mapping template')
        parser.add_argument(
            '--use-default-template',
            action='store_true',
            help='Apply the default weekly mapping template instead of the built-in headers',
        )

    def handle(self, *args, **options):
        path = self._resolve_path(options['xlsx'])
        mapping = self._load_mapping(options.get('template'), options['use_default_template'])

        try:
            activity_date = parse_activity_date(options['date'])
            rows = read_spreadsheet(path)
            summary = ingest_weekly_activities(
                rows,
                activity_date=activity_date,
                uploaded_by=options['user'],
                mapping=mapping,
            )
        except (ActivityUploadError, SpreadsheetError) as exc:
            raise CommandError(str(exc)) from exc

        self.stdout.write(self.style.SUCCESS(f'Import summary: {summary.as_dict()}'))

    @staticmethod
    def _resolve_path(value: str) -> Path:
        path = Path(value)
        if not path.is_absolute() and not path.exists():
            path = Path(getattr(settings, 'UPLOAD_DATA_DIR', settings.BASE_DIR / 'data')) / path
        if not path.exists():
            raise CommandError(f'File not found: {value}')
        return path

    @staticmethod
    def _load_mapping(name: str | None, use_default: bool) -> dict | None:
        if name:
            template = ColumnMappingTemplate.objects.filter(name=name).first()
            if template is None:
                raise CommandError(f'Unknown mapping template: {name}')
            return template.mapping
        if use_default:
            template = default_mapping_template()
            if template is None:
                raise CommandError('No default mapping template has been saved')
            return template.mapping
        return None
