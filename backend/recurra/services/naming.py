"""Human-readable names for detected recurring patterns."""

# Ordered: the first key found in the description wins
COMMON_SERVICES = {
    "netflix": "Netflix",
    "spotify": "Spotify",
    "amazon prime": "Amazon Prime",
    "youtube premium": "YouTube Premium",
    "microsoft": "Microsoft 365",
    "adobe": "Adobe Creative Cloud",
    "apple": "Apple Services",
    "google": "Google Services",
    "disney": "Disney+",
    "hbo": "HBO Max",
    "hulu": "Hulu",
    "electric": "Electricity Bill",
    "water": "Water Bill",
    "gas": "Gas Bill",
    "internet": "Internet Bill",
    "phone": "Phone Bill",
    "rent": "Rent",
    "mortgage": "Mortgage",
    "insurance": "Insurance",
    "gym": "Gym Membership",
}

UNKNOWN_NAME = "Unknown Subscription"


def generate_pattern_name(description: str) -> str:
    """Map a raw description to a display name, title-casing unknown ones."""
    if not description or not description.strip():
        return UNKNOWN_NAME

    lower_desc = description.lower()
    for key, name in COMMON_SERVICES.items():
        if key in lower_desc:
            return name

    return " ".join(word[:1].upper() + word[1:].lower() for word in description.split())
