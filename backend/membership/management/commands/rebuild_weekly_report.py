from __future__ import annotations

from django.core.management.base import BaseCommand, CommandError

from membership.models import Activity
from membership.services import rebuild_weekly_report


class Command(BaseCommand):
    help = 'Recompute weekly reports from stored activities.'

    def add_arguments(self, parser):
        parser.add_argument('--week', type=int, help='ISO week number (omit to rebuild every stored week)')
        parser.add_argument('--year', type=int, help='ISO week-year')

    def handle(self, *args, **options):
        week = options.get('week')
        year = options.get('year')

        if week is not None and year is None:
            raise CommandError('--year is required with --week')

        if week is not None:
            weeks = [(week, year)]
        else:
            queryset = Activity.objects.all()
            if year is not None:
                queryset = queryset.filter(year=year)
            weeks = list(
                queryset.values_list('week_number', 'year').distinct().order_by('year', 'week_number')
            )

        for week_number, week_year in weeks:
            try:
                report = rebuild_weekly_report(week_number, week_year)
            except ValueError as exc:
                raise CommandError(f'Invalid week {week_year}-W{week_number}: {exc}') from exc
            self.stdout.write(f'{report}: {report.total_members} members, attendance {report.attendance_rate:.1f}%')

        self.stdout.write(self.style.SUCCESS(f'Rebuilt {len(weeks)} weekly report(s)'))
