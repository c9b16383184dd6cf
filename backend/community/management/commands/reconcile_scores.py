"""
Management command to rebuild cached vote counters from the ledgers.

Usage: python manage.py reconcile_scores
"""

from django.core.management.base import BaseCommand

from community.services import reconcile_all_scores


class Command(BaseCommand):
    help = 'Recompute discussion/comment scores and review vote counters from stored votes'

    def handle(self, *args, **options):
        corrected = reconcile_all_scores()

        if not any(corrected.values()):
            self.stdout.write(self.style.SUCCESS('All cached scores match the vote ledger.'))
            return

        self.stdout.write(self.style.WARNING(
            f'Corrected cached counters:\n'
            f'  - {corrected["discussion"]} discussions\n'
            f'  - {corrected["comment"]} comments\n'
            f'  - {corrected["review"]} reviews'
        ))
