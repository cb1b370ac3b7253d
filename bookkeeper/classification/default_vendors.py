"""
Built-in vendor knowledge.

DEFAULT_VENDORS is the fallback layer used when neither the user's own
rules nor the enabled global rules match: a pattern found in the cleaned
description maps to a category KEY, a subcategory and a display vendor.

GLOBAL_RULES are shared ClassificationRule rows seeded into storage under
GLOBAL_USER_ID. Users can switch them off as a set or one at a time.
"""

from decimal import Decimal
from typing import Any, NamedTuple, Optional

import structlog

from bookkeeper.classification.cleaning import amount_direction
from bookkeeper.models.categories import IRSCategory, category_label, is_positive_category_key
from bookkeeper.models.classification import AmountDirection, ClassificationRule, RuleSource
from bookkeeper.storage.interface import CLASSIFICATION_RULES, serialize_record


logger = structlog.get_logger(__name__)

GLOBAL_USER_ID = "GLOBAL"


class VendorMapping(NamedTuple):
    category: str
    subcategory: Optional[str]
    vendor: str


def _group(category: str, subcategory: Optional[str], vendors: dict[str, str]) -> dict[str, VendorMapping]:
    return {
        pattern: VendorMapping(category, subcategory, vendor)
        for pattern, vendor in vendors.items()
    }


# =============================================================================
# DEFAULT VENDOR TABLE
# =============================================================================

DEFAULT_VENDORS: dict[str, VendorMapping] = {
    # Gas stations
    **_group("CAR_TRUCK_EXPENSES", "Fuel/Gas", {
        "SHELL": "Shell", "CHEVRON": "Chevron", "EXXON": "Exxon",
        "EXXONMOBIL": "ExxonMobil", "MOBIL": "Mobil", "BP": "BP",
        "SPEEDWAY": "Speedway", "MARATHON": "Marathon", "CIRCLE K": "Circle K",
        "RACETRAC": "RaceTrac", "WAWA": "Wawa", "SHEETZ": "Sheetz",
        "PILOT": "Pilot", "LOVES": "Love's", "LOVE'S": "Love's",
        "SUNOCO": "Sunoco", "VALERO": "Valero", "CITGO": "Citgo",
        "TEXACO": "Texaco", "CUMBERLAND": "Cumberland Farms", "QT": "QuikTrip",
        "QUIKTRIP": "QuikTrip", "KWIK TRIP": "Kwik Trip",
        "7-ELEVEN": "7-Eleven", "7 ELEVEN": "7-Eleven",
    }),

    # Auto parts and service
    **_group("CAR_TRUCK_EXPENSES", "Tires and Parts", {
        "AUTOZONE": "AutoZone", "ADVANCE AUTO": "Advance Auto Parts",
        "OREILLY": "O'Reilly Auto Parts", "O'REILLY": "O'Reilly Auto Parts",
        "NAPA": "NAPA", "DISCOUNT TIRE": "Discount Tire", "GOODYEAR": "Goodyear",
    }),
    **_group("CAR_TRUCK_EXPENSES", "Repairs & Maintenance", {
        "FIRESTONE": "Firestone", "JIFFY LUBE": "Jiffy Lube",
        "VALVOLINE": "Valvoline", "MIDAS": "Midas",
    }),
    **_group("RENT_LEASE_VEHICLES", None, {
        "PENSKE": "Penske", "UHAUL": "U-Haul", "U-HAUL": "U-Haul",
        "ENTERPRISE": "Enterprise", "HERTZ": "Hertz", "BUDGET RENT": "Budget",
    }),

    # Hardware and building materials
    **_group("MATERIALS_SUPPLIES", "Manufacturing Materials", {
        "HOME DEPOT": "Home Depot", "HOMEDEPOT": "Home Depot",
        "LOWES": "Lowe's", "LOWE'S": "Lowe's", "MENARDS": "Menards",
        "84 LUMBER": "84 Lumber", "ACE HARDWARE": "Ace Hardware",
        "TRUE VALUE": "True Value", "FASTENAL": "Fastenal", "GRAINGER": "Grainger",
        "FERGUSON": "Ferguson", "FLOOR & DECOR": "Floor & Decor",
        "SHERWIN": "Sherwin-Williams", "BENJAMIN MOORE": "Benjamin Moore",
    }),
    **_group("TOOLS_EQUIPMENT", None, {
        "HARBOR FREIGHT": "Harbor Freight", "NORTHERN TOOL": "Northern Tool",
    }),

    # Office
    **_group("OFFICE_EXPENSES", "Small Equipment (< $2,500)", {
        "STAPLES": "Staples", "OFFICE DEPOT": "Office Depot",
        "OFFICEMAX": "OfficeMax", "OFFICE MAX": "OfficeMax",
    }),
    **_group("OFFICE_EXPENSES", "Printer Paper & Ink", {
        "FED EX OFFICE": "FedEx Office", "FEDEX OFFICE": "FedEx Office",
    }),
    "IKEA": VendorMapping("OFFICE_EXPENSES", "Office Decor", "IKEA"),

    # Software
    **_group("SOFTWARE_SUBSCRIPTIONS", None, {
        "ADOBE": "Adobe", "MICROSOFT": "Microsoft", "MSFT": "Microsoft",
        "GOOGLE": "Google", "DROPBOX": "Dropbox", "ZOOM": "Zoom",
        "SLACK": "Slack", "GITHUB": "GitHub", "ATLASSIAN": "Atlassian",
        "JIRA": "Atlassian", "SALESFORCE": "Salesforce", "HUBSPOT": "HubSpot",
        "QUICKBOOKS": "QuickBooks", "INTUIT": "Intuit", "CANVA": "Canva",
        "MAILCHIMP": "Mailchimp", "CONSTANT CONTACT": "Constant Contact",
        "DOCUSIGN": "DocuSign", "NOTION": "Notion", "ASANA": "Asana",
        "MONDAY.COM": "Monday.com", "CALENDLY": "Calendly",
        "GRAMMARLY": "Grammarly", "CHATGPT": "OpenAI", "OPENAI": "OpenAI",
        "APPLE.COM": "Apple", "SPOTIFY": "Spotify",
    }),

    # Hosting and domains
    **_group("WEB_HOSTING", None, {
        "GODADDY": "GoDaddy", "NAMECHEAP": "Namecheap", "BLUEHOST": "Bluehost",
        "HOSTGATOR": "HostGator", "SITEGROUND": "SiteGround",
        "CLOUDFLARE": "Cloudflare", "AWS": "Amazon Web Services",
        "AMAZON WEB": "Amazon Web Services", "DIGITALOCEAN": "DigitalOcean",
        "HEROKU": "Heroku", "VERCEL": "Vercel", "NETLIFY": "Netlify",
        "FIREBASE": "Firebase", "RENDER": "Render", "SQUARESPACE": "Squarespace",
        "WIX": "Wix", "WORDPRESS": "WordPress", "SHOPIFY": "Shopify",
    }),

    # Utilities and telecom
    **_group("UTILITIES", None, {
        "FPL": "Florida Power & Light", "DUKE ENERGY": "Duke Energy",
        "GEORGIA POWER": "Georgia Power", "CONEDISON": "Con Edison",
        "CON EDISON": "Con Edison", "PG&E": "PG&E", "PACIFIC GAS": "PG&E",
        "SOUTHERN CALIFORNIA EDISON": "SCE", "AT&T": "AT&T", "ATT": "AT&T",
        "VERIZON": "Verizon", "VZWRLSS": "Verizon", "T-MOBILE": "T-Mobile",
        "TMOBILE": "T-Mobile", "COMCAST": "Comcast", "XFINITY": "Xfinity",
        "SPECTRUM": "Spectrum", "COX COMM": "Cox", "CENTURYLINK": "CenturyLink",
        "WATER DEPT": "Water Department", "CITY OF": "City Utilities",
    }),

    # Insurance
    "GEICO": VendorMapping("INSURANCE_OTHER", "Commercial Auto", "GEICO"),
    **_group("INSURANCE_OTHER", None, {
        "STATE FARM": "State Farm", "PROGRESSIVE": "Progressive",
        "ALLSTATE": "Allstate", "LIBERTY MUTUAL": "Liberty Mutual",
        "NATIONWIDE": "Nationwide", "FARMERS": "Farmers", "USAA": "USAA",
        "TRAVELERS": "Travelers", "HARTFORD": "The Hartford",
    }),
    **_group("EMPLOYEE_BENEFIT_PROGRAMS", "Health Insurance", {
        "CIGNA": "Cigna", "AETNA": "Aetna", "BLUE CROSS": "Blue Cross",
        "UNITED HEALTH": "United Healthcare",
    }),

    # Shipping
    **_group("OTHER_COSTS", "Shipping to Customer", {
        "USPS": "USPS", "UPS": "UPS", "FEDEX": "FedEx", "FED EX": "FedEx",
        "DHL": "DHL", "STAMPS.COM": "Stamps.com", "PIRATESHIP": "Pirate Ship",
        "SHIPSTATION": "ShipStation",
    }),

    # Banks and bank fees
    **_group("BANK_FEES", None, {
        "CHASE": "Chase", "BANK OF AMERICA": "Bank of America",
        "WELLS FARGO": "Wells Fargo", "CITI": "Citi", "CITIBANK": "Citi",
        "PNC": "PNC", "US BANK": "US Bank", "CAPITAL ONE": "Capital One",
        "TD BANK": "TD Bank", "TRUIST": "Truist", "REGIONS": "Regions",
        "SUNTRUST": "SunTrust", "MONTHLY SERVICE FEE": "Bank Fee",
        "OVERDRAFT FEE": "Bank Fee", "ATM FEE": "Bank Fee", "WIRE FEE": "Bank Fee",
    }),
    **_group("INTEREST_OTHER", "Credit Card Interest", {
        "INTEREST CHARGE": "Interest Charge", "FINANCE CHARGE": "Finance Charge",
    }),

    # Payment processors
    **_group("COMMISSIONS_FEES", None, {
        "PAYPAL": "PayPal", "STRIPE": "Stripe", "SQUARE": "Square",
        "VENMO": "Venmo", "BRAINTREE": "Braintree",
        "AUTHORIZE.NET": "Authorize.net", "CLOVER": "Clover", "TOAST": "Toast",
    }),

    # Advertising
    **_group("ADVERTISING", "Online Ads", {
        "GOOGLE ADS": "Google Ads", "GOOGLE AD": "Google Ads",
        "FACEBOOK ADS": "Facebook/Meta", "FB ADS": "Facebook/Meta",
        "FACEBOOK": "Facebook/Meta", "META ADS": "Facebook/Meta",
        "META": "Facebook/Meta", "INSTAGRAM": "Instagram",
        "LINKEDIN ADS": "LinkedIn", "LINKEDIN": "LinkedIn",
        "TWITTER": "Twitter/X", "TIKTOK": "TikTok",
    }),
    **_group("ADVERTISING", "Directory Listings", {
        "YELP": "Yelp", "YELLOW PAGES": "Yellow Pages",
    }),
    **_group("ADVERTISING", "Business Cards", {
        "VISTAPRINT": "VistaPrint", "MOOCOM": "Moo", "MOO.COM": "Moo",
    }),

    # Restaurants and delivery
    **_group("MEALS_ENTERTAINMENT", None, {
        "MCDONALDS": "McDonald's", "MCDONALD'S": "McDonald's",
        "STARBUCKS": "Starbucks", "CHIPOTLE": "Chipotle", "SUBWAY": "Subway",
        "DUNKIN": "Dunkin'", "BURGER KING": "Burger King", "WENDYS": "Wendy's",
        "WENDY'S": "Wendy's", "TACO BELL": "Taco Bell",
        "CHICK-FIL-A": "Chick-fil-A", "CHICKFILA": "Chick-fil-A",
        "CHILIS": "Chili's", "CHILI'S": "Chili's", "APPLEBEES": "Applebee's",
        "APPLEBEE'S": "Applebee's", "OLIVE GARDEN": "Olive Garden",
        "PANERA": "Panera", "PANDA EXPRESS": "Panda Express",
        "FIVE GUYS": "Five Guys", "POPEYES": "Popeyes", "KFC": "KFC",
        "DOMINOS": "Domino's", "DOMINO'S": "Domino's", "PIZZA HUT": "Pizza Hut",
        "PAPA JOHN'S": "Papa John's", "PAPA JOHNS": "Papa John's",
        "DOORDASH": "DoorDash", "GRUBHUB": "Grubhub", "UBER EATS": "Uber Eats",
        "UBEREATS": "Uber Eats", "POSTMATES": "Postmates",
        "TST*": "Restaurant (Toast)", "SQ *": "Restaurant (Square)",
    }),

    # Travel
    **_group("TRAVEL", None, {
        "UBER": "Uber", "LYFT": "Lyft", "DELTA": "Delta Airlines",
        "AMERICAN AIRLINES": "American Airlines",
        "UNITED AIRLINES": "United Airlines", "SOUTHWEST": "Southwest Airlines",
        "JETBLUE": "JetBlue", "SPIRIT": "Spirit Airlines",
        "FRONTIER": "Frontier Airlines", "MARRIOTT": "Marriott",
        "HILTON": "Hilton", "HYATT": "Hyatt", "IHG": "IHG",
        "HOLIDAY INN": "Holiday Inn", "HAMPTON INN": "Hampton Inn",
        "BEST WESTERN": "Best Western", "AIRBNB": "Airbnb", "VRBO": "VRBO",
        "EXPEDIA": "Expedia", "BOOKING.COM": "Booking.com",
        "HOTELS.COM": "Hotels.com", "KAYAK": "Kayak",
    }),
    **_group("CAR_TRUCK_EXPENSES", "Parking & Tolls", {
        "PARKING": "Parking", "TOLL": "Toll", "SUNPASS": "SunPass",
        "E-PASS": "E-Pass", "EPASS": "E-Pass", "EZPASS": "EZPass",
        "E-ZPASS": "EZPass",
    }),

    # Legal and professional
    **_group("LEGAL_PROFESSIONAL", "Business Registration/Filing Fees", {
        "LEGALZOOM": "LegalZoom", "INC FILE": "IncFile",
        "NORTHWEST REGISTERED": "Northwest Registered Agent",
    }),
    **_group("LEGAL_PROFESSIONAL", "Legal Fees", {
        "ROCKET LAWYER": "Rocket Lawyer", "NOLO": "Nolo",
    }),
    **_group("LEGAL_PROFESSIONAL", "Accounting & Tax Prep", {
        "H&R BLOCK": "H&R Block", "TURBOTAX": "TurboTax", "TAXACT": "TaxAct",
    }),

    # Memberships and training
    **_group("DUES_MEMBERSHIPS", None, {
        "COSTCO": "Costco", "SAMS CLUB": "Sam's Club", "SAM'S CLUB": "Sam's Club",
        "BJS": "BJ's", "BJ'S": "BJ's", "AMAZON PRIME": "Amazon Prime",
    }),
    **_group("TRAINING_EDUCATION", None, {
        "UDEMY": "Udemy", "COURSERA": "Coursera",
        "LINKEDIN LEARNING": "LinkedIn Learning", "SKILLSHARE": "Skillshare",
        "MASTERCLASS": "MasterClass", "PLURALSIGHT": "Pluralsight",
    }),

    # General retail, refined by the user later
    **_group("SUPPLIES", None, {
        "AMAZON": "Amazon", "AMZN": "Amazon", "WALMART": "Walmart",
        "TARGET": "Target", "BEST BUY": "Best Buy", "BESTBUY": "Best Buy",
    }),

    # Owner and personal
    **_group("OWNER_DRAWS", None, {
        "ATM WITHDRAWAL": "ATM Withdrawal", "ATM CASH": "ATM Withdrawal",
        "CASH WITHDRAWAL": "Cash Withdrawal",
    }),
    **_group("PERSONAL_TRANSFER", None, {
        "ZELLE": "Zelle", "TRANSFER TO": "Transfer", "TRANSFER FROM": "Transfer",
    }),
    **_group("PERSONAL_EXPENSE", None, {
        "NETFLIX": "Netflix", "HULU": "Hulu", "DISNEY+": "Disney+",
        "HBO": "HBO Max", "PARAMOUNT": "Paramount+", "PEACOCK": "Peacock",
        "GYM": "Gym", "FITNESS": "Fitness", "PLANET FITNESS": "Planet Fitness",
        "LA FITNESS": "LA Fitness",
    }),
}

# Longest pattern first so "GOOGLE ADS" wins over "GOOGLE"
PATTERNS_BY_LENGTH = sorted(DEFAULT_VENDORS, key=len, reverse=True)


def vendor_direction(category_key: str) -> AmountDirection:
    """Income keys expect money in, everything else money out."""
    if is_positive_category_key(category_key):
        return AmountDirection.POSITIVE
    return AmountDirection.NEGATIVE


def match_default_vendor(
    cleaned: str,
    vendor: str,
    amount: Any,
) -> Optional[tuple[str, VendorMapping]]:
    """
    First (longest) pattern found in the cleaned text or extracted vendor
    whose category direction agrees with the amount.

    Returns (pattern, mapping) or None.
    """
    direction = amount_direction(amount)
    for pattern in PATTERNS_BY_LENGTH:
        if pattern in cleaned or pattern in vendor:
            mapping = DEFAULT_VENDORS[pattern]
            if vendor_direction(mapping.category) != direction:
                continue
            return pattern, mapping
    return None


# =============================================================================
# SEEDED GLOBAL RULES
# =============================================================================

GAS_STATION_PATTERNS = {
    "SHELL": "Shell", "CHEVRON": "Chevron", "EXXON": "Exxon", "BP": "BP",
    "MOBIL": "Mobil", "CIRCLE K": "Circle K", "7-ELEVEN": "7-Eleven",
    "7 ELEVEN": "7-Eleven", "SPEEDWAY": "Speedway", "WAWA": "Wawa",
    "RACETRAC": "RaceTrac", "QUIKTRIP": "QuikTrip", "SHEETZ": "Sheetz",
    "MURPHY": "Murphy USA", "SUNOCO": "Sunoco", "VALERO": "Valero",
    "CITGO": "Citgo", "ARCO": "ARCO", "PHILLIPS 66": "Phillips 66",
    "CONOCO": "Conoco",
}

# Purchases under this at a gas station are snacks, not fuel
GAS_STATION_SNACK_LIMIT = Decimal("15.00")

_MEALS = IRSCategory.MEALS_ENTERTAINMENT.value
_CAR = IRSCategory.CAR_TRUCK_EXPENSES.value

# (name, pattern, category label, subcategory, confidence)
_NAMED_GLOBAL_RULES = [
    ("McDonald's", "MCDONALD", _MEALS, "Fast Food", 0.95),
    ("Burger King", "BURGER KING", _MEALS, "Fast Food", 0.95),
    ("Wendy's", "WENDY", _MEALS, "Fast Food", 0.95),
    ("Taco Bell", "TACO BELL", _MEALS, "Fast Food", 0.95),
    ("Chick-fil-A", "CHICK-FIL-A", _MEALS, "Fast Food", 0.95),
    ("Chipotle", "CHIPOTLE", _MEALS, "Fast Food", 0.95),
    ("Subway", "SUBWAY", _MEALS, "Fast Food", 0.95),
    ("KFC", "KFC", _MEALS, "Fast Food", 0.95),
    ("Popeyes", "POPEYE", _MEALS, "Fast Food", 0.95),
    ("Dunkin", "DUNKIN", _MEALS, "Coffee/Snacks", 0.95),
    ("Starbucks", "STARBUCKS", _MEALS, "Coffee/Snacks", 0.95),
    ("Panera", "PANERA", _MEALS, "Fast Food", 0.95),
    ("AutoZone", "AUTOZONE", _CAR, "Parts/Maintenance", 0.95),
    ("O'Reilly Auto", "O'REILLY", _CAR, "Parts/Maintenance", 0.95),
    ("Advance Auto", "ADVANCE AUTO", _CAR, "Parts/Maintenance", 0.95),
    ("NAPA Auto", "NAPA", _CAR, "Parts/Maintenance", 0.95),
    ("Home Depot", "HOME DEPOT", IRSCategory.MATERIALS_SUPPLIES.value, None, 0.85),
    ("Lowe's", "LOWE'S", IRSCategory.MATERIALS_SUPPLIES.value, None, 0.85),
    ("Menards", "MENARDS", IRSCategory.MATERIALS_SUPPLIES.value, None, 0.85),
    ("Office Depot", "OFFICE DEPOT", IRSCategory.OFFICE_EXPENSES.value, None, 0.90),
    ("Staples", "STAPLES", IRSCategory.OFFICE_EXPENSES.value, None, 0.90),
    ("ATM Withdrawal", "ATM WITHDRAWAL", IRSCategory.OWNER_DRAWS.value, None, 0.95),
    ("ATM Cash Deposit", "ATM CASH DEPOSIT", IRSCategory.OWNER_CONTRIBUTION.value, None, 0.95),
]


def build_global_rules() -> list[ClassificationRule]:
    """The shared rule set, including the gas-station amount bands."""
    rules = [
        ClassificationRule(
            user_id=GLOBAL_USER_ID,
            name=name,
            pattern=pattern,
            category=category_label(category),
            subcategory=subcategory,
            confidence=confidence,
            source=RuleSource.GLOBAL,
            is_global=True,
        )
        for name, pattern, category, subcategory, confidence in _NAMED_GLOBAL_RULES
    ]

    for pattern, vendor in GAS_STATION_PATTERNS.items():
        rules.append(ClassificationRule(
            user_id=GLOBAL_USER_ID,
            name=f"{vendor} (snacks)",
            pattern=pattern,
            category=_MEALS,
            subcategory="Gas Station Snacks",
            vendor_name=vendor,
            source=RuleSource.GLOBAL,
            is_global=True,
            amount_direction=AmountDirection.NEGATIVE,
            amount_max=GAS_STATION_SNACK_LIMIT - Decimal("0.01"),
        ))
        rules.append(ClassificationRule(
            user_id=GLOBAL_USER_ID,
            name=f"{vendor} (fuel)",
            pattern=pattern,
            category=_CAR,
            subcategory="Fuel/Gas",
            vendor_name=vendor,
            source=RuleSource.GLOBAL,
            is_global=True,
            amount_direction=AmountDirection.NEGATIVE,
            amount_min=GAS_STATION_SNACK_LIMIT,
        ))
    return rules


async def seed_global_rules(storage) -> int:
    """Insert the shared rule set once. Returns how many rules were added."""
    existing = await storage.count(CLASSIFICATION_RULES, {"user_id": GLOBAL_USER_ID})
    if existing:
        return 0
    rules = build_global_rules()
    for rule in rules:
        await storage.insert(CLASSIFICATION_RULES, serialize_record(rule))
    logger.info("global_rules_seeded", count=len(rules))
    return len(rules)
