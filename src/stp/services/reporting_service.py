from __future__ import annotations

from datetime import date

from openpyxl import Workbook
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.table import Table, TableStyleInfo

from stp.domain.errors import NotFoundError, ValidationError
from stp.domain.models import TransactionHeader, TransactionLine


class ReportingService:
    def __init__(self, repo):
        self.repo = repo

    def transaction_detail(self, transaction_id: int) -> tuple[TransactionHeader, list[TransactionLine]]:
        header = self.repo.get_transaction_header(int(transaction_id))
        if header is None:
            raise NotFoundError(f"Transaction not found with ID: {transaction_id}", transactionId=transaction_id)
        return header, self.repo.lines_for_transaction(header.id)

    def list_transactions_between(self, start: date, end: date) -> list[TransactionHeader]:
        if end < start:
            raise ValidationError("End date must not be before start date.", start=start, end=end)
        return self.repo.list_transactions_between(start, end)

    def export_transactions_excel(self, path: str, start: date, end: date) -> int:
        """Write the transactions in ``[start, end]`` to ``path``. Returns the header count."""
        headers = self.list_transactions_between(start, end)
        products = {p.id: p for p in self.repo.list_products()}
        wb = Workbook()

        def money(cell):
            cell.number_format = "#,##0.00"

        def bold_row(ws, r):
            for c in ws[r]:
                c.font = Font(bold=True)

        def set_widths(ws, widths: dict[str, int]):
            for col, w in widths.items():
                ws.column_dimensions[col].width = w

        def add_table(ws, name: str, end_row: int, end_col: int):
            ref = f"A1:{get_column_letter(end_col)}{end_row}"
            tab = Table(displayName=name, ref=ref)
            tab.tableStyleInfo = TableStyleInfo(
                name="TableStyleMedium9",
                showRowStripes=True,
                showColumnStripes=False,
            )
            ws.add_table(tab)

        # -------- 1) Transactions --------
        ws = wb.active
        ws.title = "Transactions"
        ws.append(["Transaction ID", "Date", "Total", "Created At"])
        bold_row(ws, 1)
        for h in headers:
            ws.append([h.id, h.transaction_date.isoformat(), h.total_price, h.created_at])
            money(ws.cell(row=ws.max_row, column=3))
        ws.freeze_panes = "A2"
        set_widths(ws, {"A": 16, "B": 14, "C": 16, "D": 22})
        if ws.max_row >= 2:
            add_table(ws, "TransactionsTable", ws.max_row, 4)

        # -------- 2) Lines --------
        ws2 = wb.create_sheet("Lines")
        ws2.append(["Transaction ID", "SKU", "Product Name", "Qty", "Unit Price", "Line Total"])
        bold_row(ws2, 1)
        for h in headers:
            for line in self.repo.lines_for_transaction(h.id):
                product = products.get(line.product_id)
                ws2.append([
                    h.id,
                    product.sku if product else "",
                    product.name if product else "",
                    line.qty, line.unit_price, line.total_price,
                ])
                money(ws2.cell(row=ws2.max_row, column=5))
                money(ws2.cell(row=ws2.max_row, column=6))
        ws2.freeze_panes = "A2"
        set_widths(ws2, {"A": 16, "B": 14, "C": 34, "D": 6, "E": 14, "F": 14})
        if ws2.max_row >= 2:
            add_table(ws2, "LinesTable", ws2.max_row, 6)

        wb.save(path)
        return len(headers)
