"""Turning price search results into PriceHistory rows"""
import logging
import re

from django.db import transaction

from .models import PriceHistory, PriceDetail

logger = logging.getLogger(__name__)

PRICE_NUMBER = re.compile(r'\d[\d,]*')


def parse_price(value):
    """
    Integer yen amount from strings such as "¥2,980" or "3000円".
    Ranges ("¥1,000〜¥2,000") take the first amount. None when nothing parses.
    """
    if value is None:
        return None
    if isinstance(value, (int, float)):
        return int(value)
    match = PRICE_NUMBER.search(str(value))
    if not match:
        return None
    try:
        return int(match.group().replace(',', ''))
    except ValueError:
        return None


def summarize_prices(amounts):
    """(min, rounded avg, max) of a list of ints; Nones when empty"""
    if not amounts:
        return None, None, None
    return min(amounts), round(sum(amounts) / len(amounts)), max(amounts)


@transaction.atomic
def save_price_history(item, prices, summary=None, source='gemini_search'):
    """
    Store a search result. Listings whose price cannot be parsed are kept out
    of the statistics and the details.
    """
    parsed = []
    for listing in prices:
        amount = parse_price(listing.get('price'))
        if amount is None:
            logger.debug(f"Skipping unparsable price {listing.get('price')!r} for item {item.id}")
            continue
        parsed.append((amount, listing))

    min_price, avg_price, max_price = summarize_prices([amount for amount, _ in parsed])
    history = PriceHistory.objects.create(
        item=item,
        source=source,
        min_price=min_price,
        avg_price=avg_price,
        max_price=max_price,
        listing_count=len(parsed),
        summary=summary,
    )
    PriceDetail.objects.bulk_create([
        PriceDetail(
            history=history,
            site=(listing.get('site') or 'unknown')[:100],
            price=amount,
            url=listing.get('url') or None,
            condition=listing.get('condition') or None,
            title=listing.get('title') or None,
        )
        for amount, listing in parsed
    ])
    logger.info(f"Saved price history {history.id} for item {item.id} ({len(parsed)} listings, avg {avg_price})")
    return history
