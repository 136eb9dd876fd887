"""Amazon product pages."""

from teak.pipeline.providers.common import (
    ProviderEnrichment,
    RawSelectorMap,
    get_meta_content,
    get_raw_text,
)

PRICE_AMOUNT = "meta[property='og:price:amount']"
PRICE_CURRENCY = "meta[property='og:price:currency']"
PRICE_META = "meta[name='price']"
PRICE_OURPRICE = "#priceblock_ourprice"
PRICE_DEALPRICE = "#priceblock_dealprice"
PRICE_OFFSCREEN = ".a-price .a-offscreen"

SELECTORS = (
    PRICE_AMOUNT,
    PRICE_CURRENCY,
    PRICE_META,
    PRICE_OURPRICE,
    PRICE_DEALPRICE,
    PRICE_OFFSCREEN,
)


def enrich(raw_map: RawSelectorMap) -> ProviderEnrichment | None:
    price = (
        get_raw_text(raw_map, PRICE_OURPRICE)
        or get_raw_text(raw_map, PRICE_DEALPRICE)
        or get_raw_text(raw_map, PRICE_OFFSCREEN)
        or get_meta_content(raw_map, PRICE_META)
        or get_meta_content(raw_map, PRICE_AMOUNT)
    )
    currency = get_meta_content(raw_map, PRICE_CURRENCY)
    if not price and not currency:
        return None

    label = f"{price or ''} {currency}".strip() if currency else price
    facts = [{"label": "Price", "value": label}] if label else []
    return ProviderEnrichment(facts=facts, raw={"price": price, "currency": currency})
