from dataclasses import dataclass
from typing import Optional

from advoqat import config
from advoqat.models import ConsultationType


@dataclass
class FeeBreakdown:
    consultation_fee: int
    platform_fee: int
    total_fee: int


class PricingPolicy:
    """Fees charged by the platform, in minor currency units.

    The defaults are the flat amounts the platform has always charged; they
    are configuration, not business rules, and can be swapped per deployment
    or per test through the ``get_pricing`` dependency.
    """

    def __init__(
        self,
        case_completion_fee: int = config.CASE_COMPLETION_FEE,
        document_fee: int = config.DOCUMENT_FEE,
        platform_fee_percent: int = config.PLATFORM_FEE_PERCENT,
    ):
        self._case_completion_fee = case_completion_fee
        self._document_fee = document_fee
        self._platform_fee_percent = platform_fee_percent

    def case_completion_fee(self, case=None) -> int:
        return self._case_completion_fee

    def document_fee(self, template_id: Optional[str] = None) -> int:
        return self._document_fee

    def consultation_fees(self, profile, consultation_type: ConsultationType, duration: int) -> FeeBreakdown:
        """Fee for one session with ``profile`` (a Freelancer or Barrister row)."""
        if consultation_type == ConsultationType.CHAT:
            base = profile.chat_fee or 0
        elif consultation_type == ConsultationType.VIDEO:
            base = profile.video_fee or 0
        else:
            base = profile.voice_fee or 0
        platform_fee = base * self._platform_fee_percent // 100
        return FeeBreakdown(consultation_fee=base, platform_fee=platform_fee, total_fee=base + platform_fee)


def get_pricing() -> PricingPolicy:
    return PricingPolicy()
