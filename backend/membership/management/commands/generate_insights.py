from django.core.management.base import BaseCommand

from membership.insights import generate_insights


class Command(BaseCommand):
    help = 'Regenerate member insights from recent activity.'

    def handle(self, *args, **options):
        created = generate_insights()
        self.stdout.write(self.style.SUCCESS(f'Created {created} insights'))
