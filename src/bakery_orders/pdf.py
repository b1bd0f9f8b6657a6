"""
Order documents and period-report exports.

The PDF is drawn with ReportLab in a worker thread, written under
PDF_STORAGE_PATH and, when PDF_PUBLIC_BASE_URL is set, exposed under that URL.
Any error propagates: order creation fails rather than leaving an order
without its document.
"""
import asyncio
import logging
from decimal import Decimal
from io import BytesIO
from pathlib import Path

from reportlab.lib.pagesizes import A4
from reportlab.lib.units import cm
from reportlab.pdfgen import canvas

from bakery_orders.config import settings
from bakery_orders.models import Order
from bakery_orders.schemas import PdfArtifact, ReportRead

logger = logging.getLogger("orders.pdf")


def _money(value) -> str:
    return f"R$ {Decimal(value):,.2f}".replace(",", "X").replace(".", ",").replace("X", ".")


class OrderPdfGenerator:
    def __init__(self, storage_path: str = settings.PDF_STORAGE_PATH,
                 public_base_url: str = settings.PDF_PUBLIC_BASE_URL):
        self.storage_path = Path(storage_path)
        self.public_base_url = public_base_url.rstrip("/")

    def file_name(self, order: Order) -> str:
        return f"pedido-{order.id}.pdf"

    async def generate_order_pdf(self, order: Order) -> PdfArtifact:
        path = self.storage_path / self.file_name(order)
        # snapshot the attributes here; the ORM object must not be touched from the thread
        lines = [
            (item.product.name if item.product is not None else f"#{item.product_id}",
             item.quantity, item.unit_price, item.subtotal)
            for item in order.items
        ]
        company = order.company.trade_name if order.company is not None else f"#{order.company_id}"

        await asyncio.to_thread(self._render, path, order.id, company, order.status, lines, order.total_value)
        logger.info("[Orders] PDF for order %s written to %s", order.id, path)

        url = f"{self.public_base_url}/{path.name}" if self.public_base_url else None
        return PdfArtifact(path=str(path), url=url)

    async def discard(self, artifact: PdfArtifact) -> None:
        """Removes a document whose order was not saved."""
        try:
            await asyncio.to_thread(Path(artifact.path).unlink, missing_ok=True)
        except OSError as e:
            logger.warning("[Orders] Could not remove %s: %s", artifact.path, e)
        else:
            logger.info("[Orders] Removed unsaved PDF %s", artifact.path)

    async def render_report(self, report: ReportRead) -> bytes:
        return await asyncio.to_thread(self._render_report, report)

    def _render(self, path: Path, order_id, company, status, lines, total) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        pdf = canvas.Canvas(str(path), pagesize=A4)
        width, height = A4
        y = height - 2 * cm

        pdf.setFont("Helvetica-Bold", 16)
        pdf.drawString(2 * cm, y, f"Pedido #{order_id}")
        y -= 1 * cm
        pdf.setFont("Helvetica", 11)
        pdf.drawString(2 * cm, y, f"Cliente: {company}")
        y -= 0.6 * cm
        pdf.drawString(2 * cm, y, f"Status: {status}")
        y -= 1.2 * cm

        pdf.setFont("Helvetica-Bold", 10)
        for x, title in ((2, "Produto"), (11, "Qtd"), (13.5, "Preço unit."), (16.5, "Subtotal")):
            pdf.drawString(x * cm, y, title)
        y -= 0.6 * cm

        pdf.setFont("Helvetica", 10)
        for name, quantity, unit_price, subtotal in lines:
            if y < 3 * cm:
                pdf.showPage()
                pdf.setFont("Helvetica", 10)
                y = height - 2 * cm
            pdf.drawString(2 * cm, y, str(name)[:50])
            pdf.drawString(11 * cm, y, f"{Decimal(quantity).normalize():f}")
            pdf.drawString(13.5 * cm, y, _money(unit_price))
            pdf.drawString(16.5 * cm, y, _money(subtotal))
            y -= 0.5 * cm

        y -= 0.5 * cm
        pdf.setFont("Helvetica-Bold", 12)
        pdf.drawString(13.5 * cm, y, f"Total: {_money(total)}")
        pdf.showPage()
        pdf.save()

    def _render_report(self, report: ReportRead) -> bytes:
        buffer = BytesIO()
        pdf = canvas.Canvas(buffer, pagesize=A4)
        width, height = A4
        y = height - 2 * cm

        pdf.setFont("Helvetica-Bold", 16)
        pdf.drawString(2 * cm, y, "Relatório de pedidos")
        y -= 1 * cm
        pdf.setFont("Helvetica", 11)
        period = f"Período: {report.start_date:%d/%m/%Y} a {report.end_date:%d/%m/%Y}"
        if report.company_id is not None:
            period += f"  Cliente: #{report.company_id}"
        pdf.drawString(2 * cm, y, period)
        y -= 0.6 * cm
        summary = report.summary
        pdf.drawString(2 * cm, y, f"Pedidos: {summary.total_orders}   Total: {_money(summary.total_value)}   "
                                  f"Ticket médio: {_money(summary.average_ticket)}")
        y -= 1.2 * cm

        if report.notes:
            pdf.drawString(2 * cm, y, report.notes)
        else:
            pdf.setFont("Helvetica-Bold", 10)
            for x, title in ((2, "Pedido"), (4, "Cliente"), (6.5, "Data"), (9.5, "Status"), (13, "Itens"), (16.5, "Total")):
                pdf.drawString(x * cm, y, title)
            y -= 0.6 * cm
            pdf.setFont("Helvetica", 10)
            for row in report.rows:
                if y < 2 * cm:
                    pdf.showPage()
                    pdf.setFont("Helvetica", 10)
                    y = height - 2 * cm
                created = f"{row.created_at:%d/%m/%Y}" if row.created_at else "-"
                pdf.drawString(2 * cm, y, f"#{row.order_id}")
                pdf.drawString(4 * cm, y, f"#{row.company_id}")
                pdf.drawString(6.5 * cm, y, created)
                pdf.drawString(9.5 * cm, y, row.status.value)
                pdf.drawString(13 * cm, y, str(row.item_count))
                pdf.drawString(16.5 * cm, y, _money(row.total_value))
                y -= 0.5 * cm

        pdf.showPage()
        pdf.save()
        return buffer.getvalue()
