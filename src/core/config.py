"""
Claims Portal Business Configuration
Thresholds for audit rules, item compliance, uploads and notifications.
Source: https://docs.pydantic.dev/latest/concepts/pydantic_settings/
"""

from decimal import Decimal
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class PortalSettings(BaseSettings):
    """
    Business rule configuration for the claims portal.

    All settings can be overridden with PORTAL_-prefixed environment
    variables, e.g. PORTAL_DUPLICATE_WINDOW_DAYS=21.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_prefix="PORTAL_",
    )

    # =========================================================================
    # Audit Rules
    # =========================================================================
    DUPLICATE_WINDOW_DAYS: int = Field(
        default=30,
        ge=1,
        description="Same beneficiary + diagnosis within this many days is a duplicate",
    )
    COST_VARIANCE_PERCENT: float = Field(
        default=50.0,
        gt=0,
        description="Deviation from the (diagnosis, procedure) group mean that raises a flag",
    )
    OUTPATIENT_PROCEDURE_KEYWORDS: str = Field(
        default="CONSULTATION,DELIVERY",
        description="Comma-separated keywords that classify a procedure as outpatient",
    )
    OUTPATIENT_MAX_STAY_DAYS: int = Field(
        default=7,
        ge=0,
        description="Longest acceptable stay for an outpatient procedure",
    )
    FACILITY_DAILY_CLAIM_LIMIT: int = Field(
        default=10,
        ge=1,
        description="Claims from one facility on one date above this are flagged",
    )
    BENEFICIARY_DIAGNOSIS_LIMIT: int = Field(
        default=2,
        ge=1,
        description="Claims for one beneficiary + diagnosis above this are flagged",
    )
    EXCESSIVE_COST_CEILING: Decimal = Field(
        default=Decimal("1000000"),
        gt=0,
        description="Absolute total-cost ceiling when no baseline is known",
    )
    EXCESSIVE_COST_BASELINE_MULTIPLIER: Decimal = Field(
        default=Decimal("3.0"),
        gt=0,
        description="Ceiling = facility/diagnosis baseline x multiplier",
    )
    HIGH_RISK_SCORE: float = Field(
        default=10.0,
        ge=0,
        description="Risk score above which a claim counts as high risk in summaries",
    )

    # =========================================================================
    # Claim Item Compliance
    # =========================================================================
    ITEM_COMPLIANT_VARIANCE_PERCENT: Decimal = Field(
        default=Decimal("10"),
        description="Variance from NHIA standard cost still considered compliant",
    )
    ITEM_EXCESSIVE_VARIANCE_PERCENT: Decimal = Field(
        default=Decimal("25"),
        description="Variance from NHIA standard cost considered excessive",
    )

    # =========================================================================
    # Uploads
    # =========================================================================
    MAX_UPLOAD_BYTES: int = Field(
        default=5 * 1024 * 1024,
        description="Maximum size of an uploaded document (5 MB)",
    )
    ALLOWED_UPLOAD_TYPES: str = Field(
        default="application/pdf,image/jpeg,image/png,image/jpg",
        description="Comma-separated MIME types accepted for uploads",
    )
    FORWARDING_LETTER_BUCKET: str = Field(
        default="forwarding-letters",
        description="Bucket for batch forwarding letters",
    )
    REIMBURSEMENT_BUCKET: str = Field(
        default="reimbursement-documents",
        description="Bucket for reimbursement receipts and supporting documents",
    )

    # =========================================================================
    # Notifications
    # =========================================================================
    DG_EMAIL: Optional[str] = Field(default="dg@nhis.gov.ng")
    FINANCE_EMAIL: Optional[str] = Field(default="finance@nhis.gov.ng")
    OPERATIONS_EMAIL: Optional[str] = Field(default="operations@nhis.gov.ng")
    ADMIN_EMAIL: Optional[str] = Field(
        default="admin@nhis.gov.ng",
        description="Recipient of batch submission notices",
    )

    CURRENCY: str = Field(default="NGN", description="Currency for all amounts")

    # =========================================================================
    # Validators
    # =========================================================================
    @field_validator("OUTPATIENT_PROCEDURE_KEYWORDS", "ALLOWED_UPLOAD_TYPES")
    @classmethod
    def validate_csv(cls, v: str) -> str:
        """Reject lists with no usable entries."""
        if not [part for part in v.split(",") if part.strip()]:
            raise ValueError("At least one value is required")
        return v

    @property
    def outpatient_keywords(self) -> list[str]:
        """Outpatient keywords, upper-cased."""
        return [k.strip().upper() for k in self.OUTPATIENT_PROCEDURE_KEYWORDS.split(",") if k.strip()]

    @property
    def allowed_upload_types(self) -> set[str]:
        """Accepted MIME types."""
        return {t.strip().lower() for t in self.ALLOWED_UPLOAD_TYPES.split(",") if t.strip()}

    @property
    def nhis_official_emails(self) -> list[str]:
        """NHIS officials notified on batch closure."""
        return [e for e in (self.DG_EMAIL, self.FINANCE_EMAIL, self.OPERATIONS_EMAIL) if e]


# Singleton instance
_portal_settings: Optional[PortalSettings] = None


def get_portal_settings() -> PortalSettings:
    """
    Get cached portal settings instance.

    Returns:
        PortalSettings instance
    """
    global _portal_settings
    if _portal_settings is None:
        _portal_settings = PortalSettings()
    return _portal_settings
