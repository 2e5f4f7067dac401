from dataclasses import dataclass

from estate_crm.schemas.listing import ListingRecord


@dataclass
class FilterResult:
    records: list[ListingRecord]
    total_matched: int

    @property
    def empty(self) -> bool:
        return self.total_matched == 0


def filter_by_price(
    records: list[ListingRecord],
    min_price: float,
    max_price: float,
    limit: int,
) -> FilterResult:
    """Keep listings priced within [min_price, max_price], then cap at ``limit``.

    ``total_matched`` counts every match, not just the ones kept.
    """
    matched = [r for r in records if min_price <= (r.price or 0) <= max_price]
    return FilterResult(records=matched[:max(limit, 0)], total_matched=len(matched))
