# turum_bridge/services/catalog_models.py
from dataclasses import dataclass, field
from typing import Optional


def _text(value) -> Optional[str]:
    if value is None:
        return None
    s = str(value).strip()
    return s or None


def normalize_images(raw: dict) -> list[str]:
    """
    Resolve the supplier's image shapes into a flat URL list.

    `images` may hold plain URL strings or objects carrying `src`/`url`;
    a lone `image` key is used only when `images` yields nothing.
    """
    out: list[str] = []
    images = raw.get("images")
    if isinstance(images, list):
        for img in images:
            if isinstance(img, str):
                src = _text(img)
            elif isinstance(img, dict):
                src = _text(img.get("src")) or _text(img.get("url"))
            else:
                src = None
            if src:
                out.append(src)
    if not out and _text(raw.get("image")):
        out.append(_text(raw.get("image")))
    return out


@dataclass
class SupplierVariant:
    variant_id: str
    size: Optional[str] = None
    eu_size: Optional[str] = None
    price: float = 0.0
    stock: int = 0

    @property
    def size_label(self) -> Optional[str]:
        # EU size is what shoppers see, so it wins when both are present
        return self.eu_size or self.size

    @classmethod
    def from_payload(cls, raw: dict) -> "SupplierVariant":
        vid = raw.get("variant_id", raw.get("id"))
        return cls(
            variant_id=str(vid) if vid is not None else "",
            size=_text(raw.get("size")),
            eu_size=_text(raw.get("eu_size")),
            price=float(raw.get("price") or 0),
            stock=int(raw.get("stock") or 0),
        )


@dataclass
class SupplierProduct:
    sku: Optional[str]
    name: Optional[str] = None
    description: str = ""
    brand: Optional[str] = None
    category: Optional[str] = None
    images: list[str] = field(default_factory=list)
    variants: list[SupplierVariant] = field(default_factory=list)

    @classmethod
    def from_payload(cls, raw: dict) -> "SupplierProduct":
        return cls(
            sku=_text(raw.get("sku")),
            name=_text(raw.get("name")),
            description=raw.get("description") or "",
            brand=_text(raw.get("brand")),
            category=_text(raw.get("category")) or _text(raw.get("type")),
            images=normalize_images(raw),
            variants=[SupplierVariant.from_payload(v) for v in (raw.get("variants") or []) if isinstance(v, dict)],
        )

    def find_variant(self, variant_id) -> Optional[SupplierVariant]:
        for v in self.variants:
            if v.variant_id == str(variant_id):
                return v
        return None
