import re

from backend.py_models.property import ErrorRecord, PropertyRecord
from backend.zillow.parsing import zpid_from_url

# Known from the search context, internal to the site, or noise.
STRIP_KEYS = (
    "nearbyNeighborhoods",
    "nearbyZipcodes",
    "nearbyCities",
    "nearbyHomes",
    "streetAddress",
    "abbreviatedAddress",
    "city",
    "state",
    "zipcode",
    "isUndisclosedAddress",
    "hideZestimate",
    "showDescriptionDisclaimer",
    "comps",
    "isListingClaimedByCurrentSignedInUser",
    "homeTourHighlights",
    "isCurrentSignedInAgentResponsible",
    "listing_sub_type",
)
FACTS_KEY = "homeFacts"
LOW_RES_TOKEN = "p_c"
HIGH_RES_TOKEN = "p_f"
MISSING_PAYLOAD = "No data JSON"
INVALID_PAYLOAD = "Invalid data JSON"

_url_key_re = re.compile(r"Url$")


def _image_urls(small) -> list[str]:
    out = []
    for img in small or []:
        url = img.get("url") if isinstance(img, dict) else img
        if isinstance(url, str) and url:
            out.append(url.replace(LOW_RES_TOKEN, HIGH_RES_TOKEN))
    return out


def strip_home_object(home: dict, show_facts: bool = False) -> dict:
    """Return a trimmed copy of a home payload with full-resolution image URLs."""
    out = {k: v for k, v in home.items() if k not in STRIP_KEYS and not _url_key_re.search(k)}
    out["images"] = _image_urls(out.pop("small", None))
    if not show_facts:
        out.pop(FACTS_KEY, None)
    return out


def build_record(home: dict, url: str, show_facts: bool = False) -> PropertyRecord:
    doc = strip_home_object(home, show_facts=show_facts)
    doc["url"] = url
    if doc.get("zpid") is None:
        doc["zpid"] = zpid_from_url(url)
    return PropertyRecord.model_validate(doc)


def missing_payload(url: str) -> ErrorRecord:
    return ErrorRecord(error=MISSING_PAYLOAD, url=url, zpid=zpid_from_url(url))


def invalid_payload(url: str) -> ErrorRecord:
    return ErrorRecord(error=INVALID_PAYLOAD, url=url, zpid=zpid_from_url(url))
