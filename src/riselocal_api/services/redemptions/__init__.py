"""Deal redemption engine exports."""

from .codes import (  # noqa: F401
    CODE_ALPHABET,
    CODE_PREFIX,
    generate_redemption_code,
    is_redemption_code,
    normalize_redemption_code,
)
from .coupons import CouponCodeService, DealCodeStore  # noqa: F401
from .direct import DirectRedemptionService, frequency_window  # noqa: F401
from .guard import DealAvailability, check_deal_availability  # noqa: F401
from .issuance import IssuancePolicy, cooldown_message  # noqa: F401
from .results import (  # noqa: F401
    CouponCodeResult,
    CouponCodeType,
    DirectEligibility,
    OutstandingCode,
    PoolUploadResult,
    RedemptionFailureReason,
    RedemptionResult,
)
from .service import RedemptionService  # noqa: F401
from .store import RedemptionStore, effective_status  # noqa: F401
from .verification import VerificationService  # noqa: F401
