"""Pydantic schemas for Instrument API."""

from datetime import datetime
from pydantic import BaseModel, Field, field_validator


class InstrumentCreate(BaseModel):
    symbol: str = Field(min_length=1, max_length=16)
    company_name: str = Field(min_length=1, max_length=200)
    sector: str | None = Field(default=None, max_length=100)
    industry: str | None = Field(default=None, max_length=100)
    is_esg_compliant: bool = False
    is_vegan_friendly: bool = False
    underlying_symbol: str | None = Field(default=None, max_length=16)
    underlying_currency: str = Field(default="USD", min_length=3, max_length=3)
    ratio: float = Field(default=1.0, gt=0)
    is_active: bool = True

    @field_validator("symbol", "underlying_symbol", "underlying_currency")
    @classmethod
    def _upper(cls, value: str | None) -> str | None:
        if value is None:
            return None
        text = value.strip().upper()
        if not text:
            raise ValueError("must not be empty")
        return text

    @field_validator("company_name")
    @classmethod
    def _trim_required_text(cls, value: str) -> str:
        text = value.strip()
        if not text:
            raise ValueError("must not be empty")
        return text


class InstrumentUpdate(BaseModel):
    company_name: str | None = Field(default=None, min_length=1, max_length=200)
    sector: str | None = Field(default=None, max_length=100)
    industry: str | None = Field(default=None, max_length=100)
    is_esg_compliant: bool | None = None
    is_vegan_friendly: bool | None = None
    underlying_symbol: str | None = Field(default=None, max_length=16)
    underlying_currency: str | None = Field(default=None, min_length=3, max_length=3)
    ratio: float | None = Field(default=None, gt=0)
    is_active: bool | None = None

    @field_validator("underlying_symbol", "underlying_currency")
    @classmethod
    def _upper_optional(cls, value: str | None) -> str | None:
        return value.strip().upper() if value is not None else None

    @field_validator(
        "company_name", "underlying_currency", "ratio",
        "is_esg_compliant", "is_vegan_friendly", "is_active",
    )
    @classmethod
    def _not_null(cls, value):
        # Omit the field to leave it unchanged; these columns are NOT NULL.
        if value is None:
            raise ValueError("must not be null")
        return value


class InstrumentRead(BaseModel):
    id: int
    symbol: str
    company_name: str
    sector: str | None
    industry: str | None
    is_esg_compliant: bool
    is_vegan_friendly: bool
    underlying_symbol: str | None
    underlying_currency: str
    ratio: float
    is_active: bool
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
