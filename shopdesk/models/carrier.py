from typing import Dict, Optional
from pydantic import BaseModel, ConfigDict


class Carrier(BaseModel):
    """Shipping carrier with its tracking page and delivery estimates"""
    model_config = ConfigDict(frozen=True)

    name: str
    code: str
    tracking_url: str
    standard_days: int
    express_days: int


SHIPPING_CARRIERS: Dict[str, Carrier] = {
    "INDIAPOST": Carrier(
        name="IndiaPost",
        code="INDIAPOST",
        tracking_url="https://www.indiapost.gov.in/_layouts/15/dop.portal.tracking/trackconsignment.aspx",
        standard_days=7,
        express_days=3,
    ),
    "DHL": Carrier(
        name="DHL",
        code="DHL",
        tracking_url="https://www.dhl.com/in-en/home/tracking.html",
        standard_days=3,
        express_days=1,
    ),
    "FEDEX": Carrier(
        name="FedEx",
        code="FEDEX",
        tracking_url="https://www.fedex.com/en-in/tracking.html",
        standard_days=3,
        express_days=1,
    ),
    "BLUEDART": Carrier(
        name="BlueDart",
        code="BLUEDART",
        tracking_url="https://www.bluedart.com/web/guest/trackdartresult",
        standard_days=2,
        express_days=1,
    ),
}

DEFAULT_DELIVERY_DAYS = 7


def find_carrier(name_or_code: str) -> Optional[Carrier]:
    """Look a carrier up by display name or code, ignoring case"""
    needle = name_or_code.strip().lower()
    for carrier in SHIPPING_CARRIERS.values():
        if carrier.name.lower() == needle or carrier.code.lower() == needle:
            return carrier
    return None
