# turum_bridge/services/stock.py
from dataclasses import dataclass, field
from typing import Optional

from .resolver import Resolution, VariantResolver


@dataclass
class ValidationReport:
    errors: list[str] = field(default_factory=list)
    reservations: list[dict] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors and bool(self.reservations)

    def fail(self, reason: str):
        self.errors.append(reason)

    def message(self) -> str:
        return ", ".join(self.errors)


class StockValidator:
    """Check resolved variants against live Turum stock. Failures are collected, never raised."""

    def __init__(self, resolver: VariantResolver):
        self.resolver = resolver

    def check(self, line_item: dict, resolution: Resolution, report: ValidationReport) -> bool:
        sku = (line_item.get("sku") or "").strip()
        qty = int(line_item.get("quantity") or 0)
        vid = resolution.variant_id

        # metafield/cache matches never fetched the product; stock must be live either way
        product = resolution.product or self.resolver.supplier_product(sku)
        variant = product.find_variant(vid) if product else None
        if variant is None:
            report.fail(f"Variant ID {vid} not found in Turum Product Feed for SKU {sku}.")
            return False

        if variant.stock < qty:
            report.fail(f"Insufficient Stock for SKU {sku} (Variant {vid}). "
                        f"Requested: {qty}, Available: {variant.stock}")
            return False

        report.reservations.append({"variant_id": vid, "quantity": qty})
        return True


def validate_order(line_items: list[dict], resolver: VariantResolver,
                   validator: Optional[StockValidator] = None) -> ValidationReport:
    validator = validator or StockValidator(resolver)
    report = ValidationReport()
    for item in line_items:
        resolution = resolver.resolve(item)
        if not resolution.matched:
            report.fail(resolution.reason or f"No matching Turum Variant for item {item.get('id')}")
            continue
        validator.check(item, resolution, report)
    return report
