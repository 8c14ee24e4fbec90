# billing/management/commands/fix_transaction_itemization.py

import logging

import openpyxl
from openpyxl.styles import Font, Alignment, PatternFill
from django.core.management.base import BaseCommand, CommandError
from django.db.models import Q
from django.utils import timezone

from billing.exceptions import ReconciliationError
from billing.models import BillingTransactionModel
from billing.reconciliation import needs_itemization, reconcile_transaction

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = 'Rebuild line items of transactions whose items do not explain their amount'

    def add_arguments(self, parser):
        parser.add_argument(
            'transactions',
            nargs='*',
            help='Transaction codes or ids to fix; all linked transactions when omitted',
        )
        parser.add_argument(
            '--include-unlinked',
            action='store_true',
            help='Also scan transactions without appointment links',
        )
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Show what would be done without making changes',
        )
        parser.add_argument(
            '--report',
            help='Write an xlsx report of the scanned transactions to this path',
        )

    def get_queryset(self, options):
        identifiers = options['transactions']
        if identifiers:
            ids = [int(value) for value in identifiers if value.isdigit()]
            return BillingTransactionModel.objects.filter(Q(transaction_code__in=identifiers) | Q(id__in=ids))

        queryset = BillingTransactionModel.objects.all()
        if not options['include_unlinked']:
            queryset = queryset.filter(appointment_links__isnull=False).distinct()
        return queryset

    def handle(self, *args, **options):
        dry_run = options['dry_run']
        transaction_ids = list(self.get_queryset(options).order_by('id').values_list('id', flat=True))

        if not transaction_ids:
            if options['transactions']:
                raise CommandError(f"No transactions found for {', '.join(options['transactions'])}")
            self.stdout.write(self.style.SUCCESS('No transactions to check'))
            return

        self.stdout.write(f'Found {len(transaction_ids)} transactions to check')
        if dry_run:
            self.stdout.write(self.style.WARNING('DRY RUN - No changes will be made'))

        rows = []
        fixed = 0
        failed = 0

        for transaction_id in transaction_ids:
            if dry_run:
                row = self.inspect(transaction_id)
            else:
                try:
                    result = reconcile_transaction(transaction_id)
                except ReconciliationError as e:
                    # keep scanning, the failed transaction stays as it was
                    failed += 1
                    self.stderr.write(self.style.ERROR(f"  - Transaction #{transaction_id} failed: {e.cause}"))
                    rows.append({'id': transaction_id, 'code': '', 'patient': '', 'amount': None,
                                 'items': None, 'reitemized': False, 'note': f'Failed: {e.cause}'})
                    continue
                row = self.describe(result['transaction'], result['items'], result['reitemized'])

            rows.append(row)
            if row['reitemized']:
                fixed += 1
                verb = 'Would rebuild' if dry_run else 'Rebuilt'
                self.stdout.write(f"{verb} {row['code']}: {row['items']} items, amount {row['amount']}")

        if options['report']:
            self.write_report(options['report'], rows, dry_run)
            self.stdout.write(f"Report written to {options['report']}")

        if dry_run:
            self.stdout.write(
                self.style.WARNING(f'\nDRY RUN: Would rebuild {fixed} of {len(transaction_ids)} transactions')
            )
        else:
            self.stdout.write(
                self.style.SUCCESS(f'\nSuccessfully rebuilt {fixed} of {len(transaction_ids)} transactions')
            )
        if failed:
            self.stdout.write(self.style.ERROR(f'{failed} transactions failed and were left unchanged'))

    def inspect(self, transaction_id):
        """Detection only; unlinked transactions are judged on their stored links"""
        billing_transaction = BillingTransactionModel.objects.get(pk=transaction_id)
        links = list(billing_transaction.appointment_links.order_by('id'))
        items = list(billing_transaction.items.order_by('id'))
        return self.describe(billing_transaction, items, needs_itemization(billing_transaction, items, links))

    def describe(self, billing_transaction, items, reitemized):
        return {
            'id': billing_transaction.id,
            'code': billing_transaction.transaction_code,
            'patient': str(billing_transaction.patient) if billing_transaction.patient else 'N/A',
            'amount': billing_transaction.amount,
            'items': len(items),
            'reitemized': reitemized,
            'note': '',
        }

    def write_report(self, path, rows, dry_run):
        workbook = openpyxl.Workbook()
        worksheet = workbook.active
        worksheet.title = "Itemization"

        header_font = Font(bold=True, color="FFFFFF")
        header_fill = PatternFill(start_color="366092", end_color="366092", fill_type="solid")
        center_alignment = Alignment(horizontal="center")

        headers = [
            "S/N", "Transaction ID", "Transaction Code", "Patient", "Amount (₱)", "Items",
            "Would Rebuild" if dry_run else "Rebuilt", "Note"
        ]
        for col_num, header in enumerate(headers, 1):
            cell = worksheet.cell(row=1, column=col_num)
            cell.value = header
            cell.font = header_font
            cell.fill = header_fill
            cell.alignment = center_alignment

        for row_num, row in enumerate(rows, 2):
            worksheet.cell(row=row_num, column=1, value=row_num - 1)
            worksheet.cell(row=row_num, column=2, value=row['id'])
            worksheet.cell(row=row_num, column=3, value=row['code'])
            worksheet.cell(row=row_num, column=4, value=row['patient'])
            worksheet.cell(row=row_num, column=5, value=float(row['amount']) if row['amount'] is not None else None)
            worksheet.cell(row=row_num, column=6, value=row['items'])
            worksheet.cell(row=row_num, column=7, value="Yes" if row['reitemized'] else "No")
            worksheet.cell(row=row_num, column=8, value=row['note'])

        summary_row = len(rows) + 3
        worksheet.cell(row=summary_row, column=1, value="SUMMARY").font = Font(bold=True, size=12)
        worksheet.cell(row=summary_row + 1, column=1, value="Generated:")
        worksheet.cell(row=summary_row + 1, column=2, value=timezone.localtime().strftime('%d %b %Y %H:%M'))
        worksheet.cell(row=summary_row + 2, column=1, value="Scanned:")
        worksheet.cell(row=summary_row + 2, column=2, value=len(rows))
        worksheet.cell(row=summary_row + 3, column=1, value="Rebuilt:")
        worksheet.cell(row=summary_row + 3, column=2, value=sum(1 for row in rows if row['reitemized']))

        column_widths = [8, 15, 20, 25, 15, 8, 14, 40]
        for col_num, width in enumerate(column_widths, 1):
            column_letter = openpyxl.utils.get_column_letter(col_num)
            worksheet.column_dimensions[column_letter].width = width

        workbook.save(path)
        logger.info(f"Itemization report with {len(rows)} rows saved to {path}")
