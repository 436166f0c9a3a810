"""
Marketplace Priors

Static marketplace knowledge used when cross-tenant data is insufficient.

fee_rate is the estimated total per-transaction cost (platform fee plus
payment processing). Sweet-spot price ranges are calibrated for the Indian
market (INR). Only region-locked marketplaces carry a currency.
"""
from typing import Optional

from app.utils.logger import log

# Marketplaces with no priors entry that still need a readable name.
DISPLAY_NAMES = {
    'SQUARE': 'Square',
}

MARKETPLACE_PRIORS = {
    'SHOPIFY': {
        'display_name': 'Shopify',
        'strengths': [
            'branded', 'dtc', 'niche', 'apparel', 'clothing', 'fashion',
            'beauty', 'cosmetics', 'skincare', 'supplement', 'health',
            'jewelry', 'accessories', 'home', 'decor', 'food', 'beverage',
        ],
        'fee_rate': 0.049,  # transaction fee + Indian payment gateway, excl. GST
        'best_for': 'branded D2C products, apparel, beauty, and lifestyle goods',
        'currency': None,
        'sweet_spot': (500, 10000),
    },
    'EBAY': {
        'display_name': 'eBay',
        'strengths': [
            'electronics', 'tech', 'gadget', 'cable', 'charger', 'adapter',
            'phone', 'mobile', 'laptop', 'computer', 'camera', 'speaker',
            'headphone', 'earphone', 'audio', 'gaming', 'console',
            'collectibles', 'vintage', 'parts', 'auto', 'refurbished',
            'tools', 'hardware', 'accessories', 'watch',
        ],
        'fee_rate': 0.145,  # final value fee incl. managed payments
        'best_for': 'electronics, tech accessories, collectibles, and cross-border export sales',
        'currency': None,
        'sweet_spot': (800, 15000),
    },
    'ETSY': {
        'display_name': 'Etsy',
        'strengths': [
            'handmade', 'vintage', 'craft', 'unique', 'candle', 'soap',
            'jewelry', 'ring', 'necklace', 'bracelet', 'earring',
            'art', 'print', 'sticker', 'decor', 'gift', 'custom',
            'personalized', 'organic', 'natural', 'pottery', 'ceramic',
            'knit', 'crochet', 'sewing', 'fabric', 'leather',
        ],
        # Variable rate only; listing and regulatory fees push low-priced
        # items well above this.
        'fee_rate': 0.095,
        'best_for': 'handmade goods, candles, jewelry, art prints, and personalized gifts',
        'currency': None,
        'sweet_spot': (800, 8000),
    },
    'FLIPKART': {
        'display_name': 'Flipkart',
        'strengths': [
            'electronics', 'mobile', 'phone', 'cable', 'charger', 'adapter',
            'laptop', 'tablet', 'speaker', 'headphone', 'earphone',
            'fashion', 'clothing', 'shoe', 'footwear', 'bag',
            'appliance', 'kitchen', 'home', 'furniture', 'grocery',
            'beauty', 'grooming', 'toy', 'book',
        ],
        'fee_rate': 0.10,
        'best_for': 'electronics, mobile accessories, fashion, and home essentials in India',
        'currency': 'INR',
        'sweet_spot': (200, 5000),
    },
    'WOOCOMMERCE': {
        'display_name': 'WooCommerce',
        'strengths': [
            'custom', 'dtc', 'digital', 'download', 'subscription',
            'niche', 'specialty', 'course', 'ebook', 'software',
            'membership', 'service',
        ],
        'fee_rate': 0.029,  # gateway only
        'best_for': 'digital products, subscriptions, and niche D2C brands',
        'currency': None,
        'sweet_spot': (500, 15000),
    },
    'BIGCOMMERCE': {
        'display_name': 'BigCommerce',
        'strengths': [
            'wholesale', 'bulk', 'industrial', 'supply', 'equipment',
            'multi-channel', 'scalable', 'catalog', 'parts',
            'office', 'furniture', 'commercial',
        ],
        'fee_rate': 0.029,  # gateway only
        'best_for': 'B2B wholesale, bulk orders, and high-volume multi-channel sellers',
        'currency': None,
        'sweet_spot': (1000, 20000),
    },
    'WIX': {
        'display_name': 'Wix',
        'strengths': [
            'local', 'boutique', 'small-business', 'artisan',
            'food', 'bakery', 'clothing', 'accessories', 'gift',
            'service', 'booking',
        ],
        'fee_rate': 0.029,  # gateway only
        'best_for': 'local boutiques, artisan products, and small businesses',
        'currency': None,
        'sweet_spot': (200, 5000),
    },
    'AMAZON': {
        'display_name': 'Amazon India',
        'strengths': [
            'electronics', 'mobile', 'phone', 'cable', 'charger', 'adapter',
            'laptop', 'tablet', 'speaker', 'headphone', 'earphone',
            'fashion', 'clothing', 'shoe', 'footwear', 'bag',
            'home', 'kitchen', 'appliance', 'furniture', 'grocery',
            'beauty', 'grooming', 'book', 'toy', 'health',
            'refurbished', 'fba',
        ],
        'fee_rate': 0.11,  # category referral fee + closing fee, averaged
        'best_for': 'broad-market products, electronics, fashion, home goods, and FBA-enabled sellers in India',
        'currency': 'INR',
        'sweet_spot': (300, 15000),
    },
    # Square does not operate in India; its name comes from DISPLAY_NAMES.
    'MAGENTO': {
        'display_name': 'Magento',
        'strengths': [
            'enterprise', 'high-volume', 'catalog', 'industrial',
            'manufacturing', 'wholesale', 'international',
            'multi-store', 'complex', 'automotive',
        ],
        'fee_rate': 0.029,  # open source edition, gateway only
        'best_for': 'enterprise e-commerce, large catalogs, and international multi-store operations',
        'currency': None,
        'sweet_spot': (1000, 50000),
    },
}


def get_prior(marketplace: str) -> Optional[dict]:
    if not marketplace:
        return None
    return MARKETPLACE_PRIORS.get(marketplace.strip().upper())


def marketplace_display_name(marketplace: Optional[str]) -> str:
    """Readable name for a marketplace enum value."""
    if not marketplace or not marketplace.strip():
        log.warning("marketplace_display_name called with empty marketplace")
        return 'Unknown Marketplace'
    key = marketplace.strip().upper()
    prior = MARKETPLACE_PRIORS.get(key)
    if prior:
        return prior['display_name']
    return DISPLAY_NAMES.get(key, marketplace.strip())
