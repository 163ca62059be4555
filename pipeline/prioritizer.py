"""Line-item prioritizer: flatten invoices into one list ordered by estimated value and complexity."""

from __future__ import annotations

import math
from typing import Sequence

from core.models import BulkProcessingOptions, Invoice, InvoiceLineItem, PrioritizedItem

LONG_DESCRIPTION_CHARS = 50
LONG_DESCRIPTION_BONUS = 5.0
MATERIAL_BONUS = 3.0


def calculate_item_priority(item: InvoiceLineItem) -> float:
    """ln(total + 1) * 10 (non-finite totals count as 0), +5 for descriptions over 50 chars, +3 for MATERIAL."""
    total = item.total_price if math.isfinite(item.total_price) else 0.0
    priority = math.log(max(total, 0.0) + 1) * 10
    if len(item.description) > LONG_DESCRIPTION_CHARS:
        priority += LONG_DESCRIPTION_BONUS
    if (item.category or "").upper() == "MATERIAL":
        priority += MATERIAL_BONUS
    return priority


def prepare_line_items(
    invoices: Sequence[Invoice],
    options: BulkProcessingOptions,
) -> list[PrioritizedItem]:
    """All line items of all invoices, highest priority first when prioritize_high_value is set."""
    items = [
        PrioritizedItem(item=li, invoice=inv, priority=calculate_item_priority(li))
        for inv in invoices
        for li in inv.line_items
    ]
    if options.prioritize_high_value:
        items.sort(key=lambda p: p.priority, reverse=True)
    return items
