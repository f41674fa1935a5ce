
from .user import User  # noqa: F401
from .premium import PremiumSubscription, PromoCode, PromoCodeRedemption  # noqa: F401
from .audit import AuditLog  # noqa: F401
