"""Constants for parsing Telegram deal posts."""

from typing import Final

DEFAULT_MAX_URLS_PER_DEAL: Final[int] = 2
"""Posts with more URLs than this are roundups/compilations, not single deals."""

DEFAULT_MIN_TITLE_LENGTH: Final[int] = 10
MAX_TITLE_LENGTH: Final[int] = 200
MAX_DESCRIPTION_LENGTH: Final[int] = 500
MIN_DESCRIPTION_LINE_LENGTH: Final[int] = 15
MIN_PREVIEW_DESCRIPTION_LENGTH: Final[int] = 20

PLACEHOLDER_PRICE: Final[int] = 1
"""Price used when a post has a product URL but no price (resolved later)."""

UNKNOWN_MERCHANT: Final[str] = "Unknown"

NON_DEAL_DOMAINS: Final[tuple[str, ...]] = (
    "youtube.com",
    "youtu.be",
    "facebook.com",
    "fb.com",
    "fb.watch",
    "instagram.com",
    "twitter.com",
    "x.com",
    "t.co",
    "linkedin.com",
    "telegram.me",
    "t.me",
    "whatsapp.com",
    "bit.ly",
    "tinyurl.com",
    "goo.gl",
)
"""Hosts that never carry a retailer deal (matched on the host and its subdomains)."""

NON_DEAL_URL_KEYWORDS: Final[tuple[str, ...]] = ("news", "blog", "article")
"""URL fragments marking news/blog links (matched anywhere in the URL)."""

MERCHANT_URL_MARKERS: Final[tuple[tuple[str, tuple[str, ...]], ...]] = (
    ("Amazon", ("amazon", "amzn.to", "amzn.in")),
    ("Flipkart", ("flipkart", "fkrt.co", "fkrt.it")),
    ("Myntra", ("myntra", "myntr.in")),
    ("Ajio", ("ajio", "ajiio.co")),
    ("Paytm", ("paytm",)),
    ("Snapdeal", ("snapdeal",)),
    ("Tata CLiQ", ("tatacliq",)),
    ("Nykaa", ("nykaa",)),
    ("Meesho", ("meesho",)),
    ("JioMart", ("jiomart",)),
)
"""Merchant detection rules, checked in order against the lowercased URL."""

CATEGORY_KEYWORDS: Final[tuple[tuple[str, tuple[str, ...]], ...]] = (
    (
        "electronics",
        (
            "phone",
            "mobile",
            "laptop",
            "tablet",
            "earphone",
            "headphone",
            "speaker",
            "smartwatch",
            "tv",
            "monitor",
            "camera",
        ),
    ),
    (
        "fashion",
        ("shirt", "t-shirt", "jeans", "dress", "shoes", "sandal", "clothing", "fashion", "watch", "bag"),
    ),
    ("home-kitchen", ("kitchen", "cookware", "bedsheet", "pillow", "furniture", "home", "decor")),
    ("books", ("book", "novel", "diary", "notebook", "journal")),
    (
        "health-beauty",
        ("cream", "lotion", "shampoo", "soap", "cosmetic", "makeup", "skincare", "perfume"),
    ),
    ("gaming", ("gaming", "playstation", "xbox", "controller", "console")),
)
"""Category detection rules, checked in order; first match wins."""
