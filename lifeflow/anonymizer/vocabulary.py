"""
Keyword dictionaries used to tokenize redacted text.

Weights (1-10) are what the local classifier adds to a category for each
token. Keywords are matched at the start of a word, so "factuur" also hits
"factuurnummer" but "date" never hits "update".
"""

from lifeflow.core.models import Category

KEYWORDS: dict[Category, dict[str, int]] = {
    Category.INVOICE: {
        "factuur": 8,
        "invoice": 8,
        "aanmaning": 7,
        "betaalverzoek": 7,
        "betaaltermijn": 6,
        "vervaldatum": 5,
        "amount due": 5,
        "rekening": 5,
        "betaling": 4,
        "payment": 4,
        "bill": 4,
        "due date": 4,
        "bedrag": 3,
        "btw": 3,
        "vat": 3,
    },
    Category.DELIVERY: {
        "out for delivery": 7,
        "track & trace": 6,
        "track and trace": 6,
        "bezorgd": 6,
        "delivered": 6,
        "verzonden": 6,
        "shipped": 6,
        "onderweg": 6,
        "on its way": 6,
        "pakket": 5,
        "package": 5,
        "parcel": 5,
        "bezorging": 5,
        "delivery": 5,
        "tracking": 5,
        "shipment": 5,
        "afhaalpunt": 5,
        "pickup point": 5,
        "verzending": 4,
    },
    Category.ORDER: {
        "order confirmation": 8,
        "orderbevestiging": 8,
        "bestelbevestiging": 8,
        "thank you for your order": 8,
        "bedankt voor je bestelling": 8,
        "bedankt voor uw bestelling": 8,
        "bestelnummer": 7,
        "ordernummer": 7,
        "order number": 7,
        "bestelling": 6,
        "order": 5,
        "purchase": 4,
        "aankoop": 4,
        "winkelwagen": 3,
    },
    Category.EVENT: {
        "uitnodiging": 7,
        "invitation": 7,
        "afspraak": 6,
        "appointment": 6,
        "meeting": 5,
        "vergadering": 5,
        "webinar": 5,
        "reservering": 5,
        "reservation": 5,
        "agenda": 4,
        "calendar": 4,
        "locatie": 2,
        "location": 2,
    },
    Category.TASK: {
        "actie vereist": 7,
        "action required": 7,
        "dringend": 6,
        "urgent": 6,
        "asap": 6,
        "todo": 5,
        "to-do": 5,
        "taak": 5,
        "task": 5,
        "deadline": 5,
        "verzoek": 4,
        "request": 4,
        "herinnering": 3,
        "reminder": 3,
        "graag": 2,
        "please": 2,
    },
    Category.NEWSLETTER: {
        "nieuwsbrief": 8,
        "newsletter": 8,
        "unsubscribe": 7,
        "uitschrijven": 7,
        "afmelden": 5,
        "digest": 5,
        "view in browser": 4,
        "bekijk in je browser": 4,
        "weekly update": 4,
    },
    Category.SPAM: {
        "viagra": 10,
        "lottery": 8,
        "loterij": 8,
        "casino": 7,
        "prijs gewonnen": 7,
        "gewonnen": 6,
        "winner": 6,
        "100% free": 6,
        "verify your account": 6,
        "prize": 5,
        "bitcoin": 5,
        "limited offer": 5,
        "crypto": 4,
        "click here": 4,
        "klik hier": 4,
    },
    Category.PERSONAL: {
        "liefs": 6,
        "groetjes": 5,
        "verjaardag": 5,
        "birthday": 5,
        "etentje": 5,
        "familie": 4,
        "family": 4,
        "hoi": 3,
        "hey": 3,
        "dinner": 3,
        "hallo": 2,
        "weekend": 2,
    },
}

CARRIERS = [
    "PostNL",
    "DHL",
    "DPD",
    "UPS",
    "GLS",
    "FedEx",
    "TNT",
    "Budbee",
    "Trunkrs",
    "Homerr",
    "Cainiao",
]

MERCHANTS = [
    "AliExpress",
    "Amazon",
    "Bol.com",
    "Coolblue",
    "Zalando",
    "Temu",
    "Shein",
    "MediaMarkt",
    "Wehkamp",
    "IKEA",
    "eBay",
    "Etsy",
]

# Keywords that only appear once an order has left the warehouse
SHIPMENT_ONLY_KEYWORDS = {
    "shipped",
    "verzonden",
    "onderweg",
    "on its way",
    "out for delivery",
    "bezorgd",
    "delivered",
    "track & trace",
    "track and trace",
    "tracking",
    "afhaalpunt",
    "pickup point",
}

# Keywords that only appear before shipment
ORDER_ONLY_KEYWORDS = {
    "order confirmation",
    "orderbevestiging",
    "bestelbevestiging",
    "thank you for your order",
    "bedankt voor je bestelling",
    "bedankt voor uw bestelling",
    "winkelwagen",
}

# Presence flags; the matched values are never emitted
AMOUNT_TOKEN = "has:amount"
TRACKING_CODE_TOKEN = "has:tracking_code"
DATE_TOKEN = "has:date"
