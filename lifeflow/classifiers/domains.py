"""
Sender domain registries.

Subdomains resolve to their parent entry, so "mail.aliexpress.com" is
treated as "aliexpress.com".
"""

from lifeflow.core.models import Category

# Domains that almost always send one kind of message
DOMAIN_CATEGORIES: dict[str, Category] = {
    # Carriers
    "postnl.nl": Category.DELIVERY,
    "postnl.com": Category.DELIVERY,
    "dhl.nl": Category.DELIVERY,
    "dhl.com": Category.DELIVERY,
    "dhlparcel.nl": Category.DELIVERY,
    "dpd.nl": Category.DELIVERY,
    "dpd.com": Category.DELIVERY,
    "ups.com": Category.DELIVERY,
    "gls-info.nl": Category.DELIVERY,
    "gls-group.eu": Category.DELIVERY,
    "fedex.com": Category.DELIVERY,
    "budbee.com": Category.DELIVERY,
    "trunkrs.nl": Category.DELIVERY,
    "homerr.com": Category.DELIVERY,
    "cainiao.com": Category.DELIVERY,
    # Billing
    "vattenfall.nl": Category.INVOICE,
    "eneco.nl": Category.INVOICE,
    "essent.nl": Category.INVOICE,
    "ziggo.nl": Category.INVOICE,
    "kpn.com": Category.INVOICE,
    "belastingdienst.nl": Category.INVOICE,
    "mollie.com": Category.INVOICE,
    "tikkie.me": Category.INVOICE,
    # Calendars
    "calendar.google.com": Category.EVENT,
    "eventbrite.com": Category.EVENT,
    "eventbrite.nl": Category.EVENT,
    "meetup.com": Category.EVENT,
    "zoom.us": Category.EVENT,
    # Mailing platforms
    "mailchimp.com": Category.NEWSLETTER,
    "mailchimpapp.net": Category.NEWSLETTER,
    "substack.com": Category.NEWSLETTER,
    "sendgrid.net": Category.NEWSLETTER,
    "laposta.nl": Category.NEWSLETTER,
}

# Known shops and their display names
MERCHANT_DOMAINS: dict[str, str] = {
    "aliexpress.com": "AliExpress",
    "amazon.nl": "Amazon",
    "amazon.com": "Amazon",
    "amazon.de": "Amazon",
    "bol.com": "Bol.com",
    "coolblue.nl": "Coolblue",
    "zalando.nl": "Zalando",
    "temu.com": "Temu",
    "shein.com": "Shein",
    "mediamarkt.nl": "MediaMarkt",
    "wehkamp.nl": "Wehkamp",
    "ikea.com": "IKEA",
    "ebay.com": "eBay",
    "ebay.nl": "eBay",
    "etsy.com": "Etsy",
}

CARRIER_DOMAINS: dict[str, str] = {
    "postnl.nl": "PostNL",
    "postnl.com": "PostNL",
    "dhl.nl": "DHL",
    "dhl.com": "DHL",
    "dhlparcel.nl": "DHL",
    "dpd.nl": "DPD",
    "dpd.com": "DPD",
    "ups.com": "UPS",
    "gls-info.nl": "GLS",
    "gls-group.eu": "GLS",
    "fedex.com": "FedEx",
    "budbee.com": "Budbee",
    "trunkrs.nl": "Trunkrs",
    "homerr.com": "Homerr",
    "cainiao.com": "Cainiao",
}


def lookup_domain(domain: str, registry: dict) -> object | None:
    """
    Find domain or its closest registered parent in registry.

    Examples:
    - lookup_domain("mail.aliexpress.com", MERCHANT_DOMAINS) -> "AliExpress"
    - lookup_domain("example.org", MERCHANT_DOMAINS) -> None
    """
    if not domain or domain == "unknown":
        return None
    parts = domain.lower().split(".")
    for i in range(len(parts) - 1):
        candidate = ".".join(parts[i:])
        if candidate in registry:
            return registry[candidate]
    return None


def merchant_for(domain: str) -> str | None:
    return lookup_domain(domain, MERCHANT_DOMAINS)


def carrier_for(domain: str) -> str | None:
    return lookup_domain(domain, CARRIER_DOMAINS)


def shop_name_from_domain(domain: str) -> str:
    """
    Best-effort shop name from a sender domain.

    Examples:
    - "mail.aliexpress.com" -> "AliExpress"
    - "shop.example.nl" -> "Example"
    """
    known = merchant_for(domain)
    if known:
        return known
    if not domain or domain == "unknown":
        return "Unknown"
    parts = domain.split(".")
    name = parts[-2] if len(parts) >= 2 else parts[0]
    return name.capitalize()
