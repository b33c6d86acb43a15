"""
Mask tokens and the starter pattern table.

The default patterns are non-exhaustive and meant to be extended with
application-specific rules.
"""

from typing import Dict

# Data type masks
MASK_INT = "***INT***"
MASK_FLOAT = "***FLOAT***"
MASK_STRING = "***STRING***"
MASK_BOOL = "***BOOL***"
MASK_NULL = "***NULL***"
MASK_ARRAY = "***ARRAY***"
MASK_OBJECT = "***OBJECT***"
MASK_RESOURCE = "***RESOURCE***"

# Generic masks
MASK_GENERIC = "***"
MASK_MASKED = "***MASKED***"
MASK_REDACTED = "***REDACTED***"

# Identifiers
MASK_HETU = "***HETU***"
MASK_SSN = "***SSN***"
MASK_USSSN = "***USSSN***"
MASK_UKNI = "***UKNI***"
MASK_CASIN = "***CASIN***"
MASK_PASSPORT = "***PASSPORT***"

# Financial
MASK_IBAN = "***IBAN***"
MASK_CC = "***CC***"
MASK_UKBANK = "***UKBANK***"
MASK_CABANK = "***CABANK***"

# Contact
MASK_EMAIL = "***EMAIL***"
MASK_PHONE = "***PHONE***"

# Secrets
MASK_TOKEN = "***TOKEN***"
MASK_APIKEY = "***APIKEY***"
MASK_SECRET = "***SECRET***"

# Misc personal data
MASK_DOB = "***DOB***"
MASK_MAC = "***MAC***"
MASK_VEHICLE = "***VEHICLE***"
MASK_MEDICARE = "***MEDICARE***"
MASK_EHIC = "***EHIC***"


def default_patterns() -> Dict[str, str]:
    """
    Get the default pattern table for common sensitive data types.

    Returns:
        Ordered mapping of delimited regex -> replacement
    """
    return {
        # Finnish SSN (HETU)
        r"/\b\d{6}[-+A]?\d{3}[A-Z]\b/u": MASK_HETU,
        # US Social Security Number (strict 3-2-4)
        r"/^\d{3}-\d{2}-\d{4}$/": MASK_USSSN,
        # Finnish IBAN, with or without grouping spaces
        r"/^FI\d{2}(?: ?\d{4}){3} ?\d{2}$/u": MASK_IBAN,
        r"/^FI\d{16}$/u": MASK_IBAN,
        # E.164 phone numbers
        r"/^\+\d{1,3}[\s-]?\d{1,4}[\s-]?\d{1,4}[\s-]?\d{1,9}$/": MASK_PHONE,
        # Email address
        r"/^[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}$/": MASK_EMAIL,
        # Date of birth (YYYY-MM-DD and DD/MM/YYYY)
        r"/^(19|20)\d{2}-[01]\d\-[0-3]\d$/": MASK_DOB,
        r"/^[0-3]\d\/[01]\d\/(19|20)\d{2}$/": MASK_DOB,
        # Passport numbers
        r"/^A\d{6}$/": MASK_PASSPORT,
        # Well-known test card numbers and generic 16-digit cards
        r"/^(4111 1111 1111 1111|5500-0000-0000-0004|340000000000009|6011000000000004)$/": MASK_CC,
        r"/\b[0-9]{16}\b/u": MASK_CC,
        # Bearer tokens
        r"/^Bearer [A-Za-z0-9\-\._~\+\/]{10,}$/": MASK_TOKEN,
        # API keys
        r"/^(sk_(live|test)_[A-Za-z0-9]{16,}|[A-Za-z0-9\-_]{20,})$/": MASK_APIKEY,
        # MAC addresses
        r"/^([0-9A-Fa-f]{2}[:-]){5}([0-9A-Fa-f]{2})$/": MASK_MAC,
        # IPv4
        r"/\b(?:(?:25[0-5]|2[0-4]\d|[01]?\d\d?)\.){3}(?:25[0-5]|2[0-4]\d|[01]?\d\d?)\b/": "***IPv4***",
        # Vehicle registration numbers
        r"/\b[A-Z]{2,3}[-\s]?\d{3,4}\b/": MASK_VEHICLE,
        r"/\b\d{3,4}[-\s]?[A-Z]{2,3}\b/": MASK_VEHICLE,
        # UK National Insurance, Canadian SIN
        r"/\b[A-Z]{2}\d{6}[A-Z]\b/": MASK_UKNI,
        r"/\b\d{3}[-\s]\d{3}[-\s]\d{3}\b/": MASK_CASIN,
        # UK sort code + account, Canadian transit + account
        r"/\b\d{6}[-\s]\d{8}\b/": MASK_UKBANK,
        r"/\b\d{5}[-\s]\d{7,12}\b/": MASK_CABANK,
        # US Medicare, European Health Insurance Card
        r"/\b\d{3}[-\s]\d{2}[-\s]\d{4}\b/": MASK_MEDICARE,
        r"/\b\d{2}[-\s]\d{4}[-\s]\d{4}[-\s]\d{4}[-\s]\d{1,4}\b/": MASK_EHIC,
        # IPv6
        r"/\b[0-9a-fA-F]{1,4}:[0-9a-fA-F:]{7,35}\b/": "***IPv6***",
    }
