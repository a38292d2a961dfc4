"""Parse Telegram deal-channel posts into scraped deals.

A post is accepted when it looks like a single retailer deal:
- at most ``max_urls`` links (more means a roundup/compilation post)
- first link is not social media, a generic shortener or a news/blog page
- it has a ₹ price or at least a product link
- a title of ``min_title_length`` characters can be found
"""

import re
from datetime import datetime
from typing import Final
from urllib.parse import urlsplit

from deal_dedup.config.logging_config import get_logger
from deal_dedup.domain.models import ScrapedDeal
from deal_dedup.domain.parsing_constants import (
    CATEGORY_KEYWORDS,
    DEFAULT_MAX_URLS_PER_DEAL,
    DEFAULT_MIN_TITLE_LENGTH,
    MAX_DESCRIPTION_LENGTH,
    MAX_TITLE_LENGTH,
    MERCHANT_URL_MARKERS,
    MIN_DESCRIPTION_LINE_LENGTH,
    MIN_PREVIEW_DESCRIPTION_LENGTH,
    NON_DEAL_DOMAINS,
    NON_DEAL_URL_KEYWORDS,
    PLACEHOLDER_PRICE,
    UNKNOWN_MERCHANT,
)
from deal_dedup.services.text_normalizer import EMOJI_PATTERN

logger = get_logger(__name__)

URL_PATTERN: Final[re.Pattern[str]] = re.compile(r"https?://\S+", re.IGNORECASE)

# Channels glue marketing words to links ("https://amzn.to/3xYzMore: ...")
PRODUCT_URL_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"(https?://\S+?)(?:More|Buy|Click|Deal|Price|Off|\s|$)"
)

PRICE_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"(?:₹|\bRs\.?|\bINR)\s?(\d[\d,]*)", re.IGNORECASE
)

PRICE_LINE_PATTERN: Final[re.Pattern[str]] = re.compile(r"^(?:₹\s?[\d,]+|[\d,]+\s?₹)")
URL_LINE_PATTERN: Final[re.Pattern[str]] = re.compile(r"^https?://", re.IGNORECASE)

TITLE_PRICE_PREFIXES: Final[tuple[re.Pattern[str], ...]] = (
    re.compile(r"^[\d,]+\s?₹\s*"),
    re.compile(r"^₹\s?[\d,]+\s*"),
    re.compile(r"^Rs\.?\s?[\d,]+\s*", re.IGNORECASE),
    re.compile(r"^INR\s?[\d,]+\s*", re.IGNORECASE),
)
TITLE_LABEL_PREFIX: Final[re.Pattern[str]] = re.compile(
    r"^(?:Deal|Hot Deal|Lightning Deal|Offer|Sale)[\s:]+", re.IGNORECASE
)
TITLE_TRAILING_SECTIONS: Final[re.Pattern[str]] = re.compile(
    r"(?:Buy Here|More|Deal Price)\s*:.*$", re.IGNORECASE
)
WHITESPACE_PATTERN: Final[re.Pattern[str]] = re.compile(r"\s+")


def extract_urls(text: str) -> list[str]:
    """All http(s) links in a post, in order."""
    return URL_PATTERN.findall(text)


def extract_product_url(text: str) -> str | None:
    """First link of the post, cut where a marketing word is glued on.

    Example:
        >>> extract_product_url("Grab it https://amzn.to/3xYzBuy now")
        'https://amzn.to/3xYz'
    """
    match = PRODUCT_URL_PATTERN.search(text)
    return match.group(1) if match else None


def is_non_deal_url(url: str) -> bool:
    """Check whether a link points at social media, a shortener or news."""
    lowered = url.lower()
    host = (urlsplit(lowered).hostname or "").removeprefix("www.")
    for domain in NON_DEAL_DOMAINS:
        if host == domain or host.endswith("." + domain):
            return True
    return any(keyword in lowered for keyword in NON_DEAL_URL_KEYWORDS)


def extract_prices(text: str) -> list[int]:
    """All rupee amounts in a post (₹1,299 / Rs. 999 / INR 499)."""
    prices = []
    for raw in PRICE_PATTERN.findall(text):
        digits = raw.replace(",", "")
        if digits:
            prices.append(int(digits))
    return prices


def detect_merchant(url: str | None) -> str:
    """Merchant name from a product link, or ``Unknown``.

    Example:
        >>> detect_merchant("https://fkrt.it/abc")
        'Flipkart'
    """
    if not url:
        return UNKNOWN_MERCHANT
    lowered = url.lower()
    for merchant, markers in MERCHANT_URL_MARKERS:
        if any(marker in lowered for marker in markers):
            return merchant
    return UNKNOWN_MERCHANT


def detect_category(title: str, text: str) -> str | None:
    """Category slug from product keywords; first matching category wins."""
    combined = f"{title} {text}".lower()
    for category, keywords in CATEGORY_KEYWORDS:
        if any(keyword in combined for keyword in keywords):
            return category
    return None


def clean_title(line: str) -> str:
    """Strip price prefixes, deal labels, trailing link sections and emoji."""
    title = line.strip()
    for pattern in TITLE_PRICE_PREFIXES:
        title = pattern.sub("", title)
    title = TITLE_LABEL_PREFIX.sub("", title)
    title = TITLE_TRAILING_SECTIONS.sub("", title)
    title = URL_PATTERN.sub("", title)
    title = EMOJI_PATTERN.sub("", title)
    title = WHITESPACE_PATTERN.sub(" ", title).strip()

    if len(title) > MAX_TITLE_LENGTH:
        title = title[: MAX_TITLE_LENGTH - 3] + "..."
    return title


def _is_price_or_url_line(line: str) -> bool:
    return bool(PRICE_LINE_PATTERN.match(line) or URL_LINE_PATTERN.match(line))


def extract_title(lines: list[str], min_length: int = DEFAULT_MIN_TITLE_LENGTH) -> str | None:
    """First meaningful line of a post, cleaned.

    Lines that are only a price or a link, or shorter than ``min_length``
    before or after cleaning, are skipped.
    """
    for line in lines:
        if _is_price_or_url_line(line) or len(line) < min_length:
            continue
        title = clean_title(line)
        if len(title) >= min_length:
            return title
    return None


def extract_description(lines: list[str], title: str) -> str | None:
    """Remaining long lines of a post, joined and capped."""
    description_lines = [
        line
        for line in lines
        if line != title
        and not _is_price_or_url_line(line)
        and len(line) > MIN_DESCRIPTION_LINE_LENGTH
    ]
    if not description_lines:
        return None
    return "\n".join(description_lines)[:MAX_DESCRIPTION_LENGTH]


def parse_deal_message(
    text: str,
    *,
    message_id: str,
    channel: str,
    posted_at: datetime,
    link_preview_title: str | None = None,
    link_preview_description: str | None = None,
    image_url: str | None = None,
    max_urls: int = DEFAULT_MAX_URLS_PER_DEAL,
    min_title_length: int = DEFAULT_MIN_TITLE_LENGTH,
) -> ScrapedDeal | None:
    """Parse one Telegram post into a scraped deal.

    Args:
        text: Message text
        message_id: Channel-scoped message id
        channel: Channel username
        posted_at: Message timestamp
        link_preview_title: Title of the link preview card, if any
        link_preview_description: Description of the link preview card
        image_url: Photo or preview image URL
        max_urls: Posts with more links are skipped as roundups
        min_title_length: Minimum title length

    Returns:
        ScrapedDeal, or None when the post is not a single deal

    Example:
        >>> deal = parse_deal_message(
        ...     "Havells Mixwell 500W Mixer Grinder\\n₹1,799 ₹3,295\\nhttps://amzn.to/4abc",
        ...     message_id="dealschannel/101",
        ...     channel="dealschannel",
        ...     posted_at=now,
        ... )
        >>> (deal.merchant, deal.price, deal.original_price)
        ('Amazon', 1799, 3295)
    """
    urls = extract_urls(text)
    if len(urls) > max_urls:
        logger.info(
            "telegram_post_skipped",
            message_id=message_id,
            reason="roundup",
            url_count=len(urls),
            max_urls=max_urls,
        )
        return None

    url = extract_product_url(text)
    if url and is_non_deal_url(url):
        logger.info(
            "telegram_post_skipped",
            message_id=message_id,
            reason="non_deal_url",
            url=url[:80],
        )
        return None

    full_text = (
        f"{link_preview_title} {link_preview_description or ''} {text}"
        if link_preview_title
        else text
    )

    prices = extract_prices(full_text)
    original_price: int | None = None
    price_is_placeholder = False
    if prices:
        price = min(prices)
        if len(prices) > 1:
            original_price = max(prices)
    elif url:
        price = PLACEHOLDER_PRICE
        price_is_placeholder = True
    else:
        logger.debug("telegram_post_skipped", message_id=message_id, reason="no_price_or_url")
        return None

    lines = [line.strip() for line in text.split("\n") if line.strip()]

    title: str | None
    if link_preview_title and len(link_preview_title.strip()) > DEFAULT_MIN_TITLE_LENGTH:
        title = link_preview_title.strip()
    else:
        title = extract_title(lines, min_title_length)

    if not title or len(title) < min_title_length:
        logger.debug("telegram_post_skipped", message_id=message_id, reason="no_title")
        return None

    if (
        link_preview_description
        and len(link_preview_description) > MIN_PREVIEW_DESCRIPTION_LENGTH
    ):
        description = link_preview_description[:MAX_DESCRIPTION_LENGTH]
    else:
        description = extract_description(lines, title)

    return ScrapedDeal(
        title=title,
        price=price,
        price_is_placeholder=price_is_placeholder,
        original_price=original_price if original_price != price else None,
        merchant=detect_merchant(url),
        url=url,
        description=description,
        image_url=image_url,
        category=detect_category(title, full_text),
        message_id=message_id,
        channel=channel,
        posted_at=posted_at,
    )
