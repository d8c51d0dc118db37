"""SQLAlchemy models package."""

from .user import User  # noqa: F401
from .vendor import Vendor  # noqa: F401
from .deal import (  # noqa: F401
    CouponRedemptionType,
    Deal,
    DealDiscountType,
    DealStatus,
    RedemptionFrequency,
)
from .deal_code import DealCode, DealCodeStatus  # noqa: F401
from .redemption import (  # noqa: F401
    CODE_FLOW_STATUSES,
    DIRECT_FLOW_STATUSES,
    DealRedemption,
    RedemptionFlow,
    RedemptionStatus,
)
