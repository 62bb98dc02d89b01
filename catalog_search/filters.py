"""Filter evaluation: SearchFilters -> ProductPredicate.

The predicate is shared by both retrievers. It can be evaluated two ways:
- matches(product): in-process check against a ProductRecord (in-memory stores).
- to_sql(alias): a parameterized SQL condition over the `products` table.

Every present field is an AND constraint; list fields are membership tests; the
price bounds are independent and inclusive. Missing or empty filters are a no-op.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from catalog_search.schemas import ProductRecord, SearchFilters


def _as_set(values: Optional[List[str]]) -> FrozenSet[str]:
    return frozenset(v for v in (values or []) if v)


@dataclass(frozen=True)
class ProductPredicate:
    """Compiled, immutable form of SearchFilters."""
    shop_id: Optional[str] = None
    price_min: Optional[float] = None
    price_max: Optional[float] = None
    categories: FrozenSet[str] = field(default_factory=frozenset)
    brands: FrozenSet[str] = field(default_factory=frozenset)
    availability: FrozenSet[str] = field(default_factory=frozenset)
    product_types: FrozenSet[str] = field(default_factory=frozenset)

    @property
    def is_empty(self) -> bool:
        return (
            self.shop_id is None
            and self.price_min is None
            and self.price_max is None
            and not self.categories
            and not self.brands
            and not self.availability
            and not self.product_types
        )

    def matches(self, product: ProductRecord) -> bool:
        """Return True when the product satisfies every constraint.

        A product without a value for a constrained field (e.g. no price while a
        price bound is set) does not match, mirroring SQL NULL comparison.
        """
        if self.shop_id is not None and product.shop_id != self.shop_id:
            return False
        if self.price_min is not None or self.price_max is not None:
            if product.price is None:
                return False
            if self.price_min is not None and product.price < self.price_min:
                return False
            if self.price_max is not None and product.price > self.price_max:
                return False
        if self.categories and product.category not in self.categories:
            return False
        if self.brands and product.brand not in self.brands:
            return False
        if self.availability:
            value = product.availability.value if product.availability else None
            if value not in self.availability:
                return False
        if self.product_types:
            value = product.product_type.value if product.product_type else None
            if value not in self.product_types:
                return False
        return True

    def to_sql(self, alias: str = "p") -> Tuple[str, Dict[str, Any]]:
        """Build a SQL condition over the products table.

        Args:
            alias: Table alias used for `products` in the enclosing query.

        Returns:
            Tuple[str, Dict[str, Any]]: (condition with named placeholders, params dict).
                The condition is "TRUE" when the predicate is empty.
        """
        conds: List[str] = []
        params: Dict[str, Any] = {}
        if self.shop_id is not None:
            conds.append(f"{alias}.shop_id::text = :f_shop_id")
            params["f_shop_id"] = self.shop_id
        if self.price_min is not None:
            conds.append(f"{alias}.price_numeric >= :f_price_min")
            params["f_price_min"] = self.price_min
        if self.price_max is not None:
            conds.append(f"{alias}.price_numeric <= :f_price_max")
            params["f_price_max"] = self.price_max
        # enum columns are compared as text so unknown values simply match nothing
        for key, column, values in (
            ("f_categories", "category", self.categories),
            ("f_brands", "brand", self.brands),
            ("f_availability", "availability::text", self.availability),
            ("f_product_types", "product_type::text", self.product_types),
        ):
            if values:
                conds.append(f"{alias}.{column} = ANY(:{key})")
                params[key] = sorted(values)
        where = " AND ".join(conds) if conds else "TRUE"
        return where, params


def compile_filters(filters: Optional[SearchFilters]) -> ProductPredicate:
    """Translate request filters into a ProductPredicate.

    Args:
        filters: Structured filters, or None for "no constraint".

    Returns:
        ProductPredicate: The compiled predicate (empty when filters is None).
    """
    if filters is None:
        return ProductPredicate()
    price_min = price_max = None
    if filters.price_range is not None:
        price_min, price_max = filters.price_range
    return ProductPredicate(
        shop_id=filters.shop_id or None,
        price_min=price_min,
        price_max=price_max,
        categories=_as_set(filters.categories),
        brands=_as_set(filters.brands),
        availability=_as_set(filters.availability),
        product_types=_as_set(filters.product_types),
    )
