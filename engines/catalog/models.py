"""
POS Catalog Engine: Product and Query Models
==============================================
The catalog backend owns products; the terminal only reads them.
A Product is an immutable snapshot taken when it was fetched.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Mapping, Optional

from core.caching.keys import stable_cache_key
from core.primitives.amounts import ZERO, optional_decimal, to_decimal


def _parse_datetime(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


def _format_datetime(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _format_decimal(value: Optional[Decimal]) -> Optional[str]:
    return str(value) if value is not None else None


# ══════════════════════════════════════════════════════════════
# PRODUCT
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Product:
    """
    Catalog product as seen by the terminal.

    Prices and stock are Decimal. `discounted_price` and `wholesale`
    only count when strictly positive; zero means "not set".
    """

    id: str
    name: str
    price: Decimal
    stock_level: Decimal = ZERO
    sku: Optional[str] = None
    barcode: Optional[str] = None
    category_id: Optional[str] = None
    discounted_price: Optional[Decimal] = None
    wholesale: Optional[Decimal] = None
    cost_price: Optional[Decimal] = None
    unit_size: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        if not self.id or not isinstance(self.id, str):
            raise ValueError("Product id must be a non-empty string.")
        if not isinstance(self.name, str):
            raise ValueError("Product name must be a string.")
        object.__setattr__(self, "price", to_decimal(self.price, field_name="price"))
        object.__setattr__(
            self, "stock_level", to_decimal(self.stock_level, field_name="stock_level")
        )
        for name in ("discounted_price", "wholesale", "cost_price"):
            object.__setattr__(
                self, name, optional_decimal(getattr(self, name), field_name=name)
            )
        if self.price < ZERO:
            raise ValueError("Product price cannot be negative.")

    @property
    def codes(self) -> tuple:
        """Scannable codes (barcode first, then SKU), blanks skipped."""
        return tuple(code for code in (self.barcode, self.sku) if code)

    def matches_code(self, code: str) -> bool:
        return code in self.codes

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "price": _format_decimal(self.price),
            "stockLevel": _format_decimal(self.stock_level),
            "sku": self.sku,
            "barcode": self.barcode,
            "categoryId": self.category_id,
            "discountedPrice": _format_decimal(self.discounted_price),
            "wholesale": _format_decimal(self.wholesale),
            "costPrice": _format_decimal(self.cost_price),
            "unitSize": self.unit_size,
            "createdAt": _format_datetime(self.created_at),
            "updatedAt": _format_datetime(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Product":
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            price=data.get("price", 0),
            stock_level=data.get("stockLevel") or 0,
            sku=data.get("sku"),
            barcode=data.get("barcode"),
            category_id=data.get("categoryId"),
            discounted_price=data.get("discountedPrice"),
            wholesale=data.get("wholesale"),
            cost_price=data.get("costPrice"),
            unit_size=data.get("unitSize"),
            created_at=_parse_datetime(data.get("createdAt")),
            updated_at=_parse_datetime(data.get("updatedAt")),
        )


# ══════════════════════════════════════════════════════════════
# QUERY MODELS
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class ProductFilters:
    search_term: Optional[str] = None
    category_id: Optional[str] = None
    code: Optional[str] = None

    def __post_init__(self) -> None:
        # Blank text means "no filter", so it must not split the cache key.
        for name in ("search_term", "category_id", "code"):
            value = getattr(self, name)
            if value is not None and not str(value).strip():
                object.__setattr__(self, name, None)


@dataclass(frozen=True)
class Pagination:
    skip: int = 0
    take: int = 50

    def __post_init__(self) -> None:
        if self.skip < 0:
            raise ValueError("skip cannot be negative.")
        if self.take <= 0:
            raise ValueError("take must be positive.")


@dataclass(frozen=True)
class ProductQuery:
    filters: ProductFilters = field(default_factory=ProductFilters)
    pagination: Pagination = field(default_factory=Pagination)

    def cache_key(self) -> str:
        return stable_cache_key(self)

    @classmethod
    def by_code(cls, code: str, take: int = 50) -> "ProductQuery":
        return cls(filters=ProductFilters(code=code), pagination=Pagination(take=take))

    @classmethod
    def by_search(cls, term: str, take: int = 50) -> "ProductQuery":
        return cls(filters=ProductFilters(search_term=term), pagination=Pagination(take=take))
