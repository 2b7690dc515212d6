"""
Request schemas

Internal (camelCase on the wire) record shapes with the validation rules of the CRM forms.
"""

import re
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_RE = re.compile(r"^\+?[1-9]\d{0,15}$")


def validate_email(value: Optional[str]) -> Optional[str]:
    if value is not None and not EMAIL_RE.match(value):
        raise ValueError("must be a valid email address")
    return value


def validate_phone(value: Optional[str]) -> Optional[str]:
    if value is not None and not PHONE_RE.match(re.sub(r"[\s\-()]", "", value)):
        raise ValueError("must be a valid phone number")
    return value


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
        extra="ignore",
    )

    def to_internal(self) -> Dict[str, Any]:
        """Populated fields keyed by their camelCase names"""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class _PersonFields(CamelModel):
    @field_validator("email", check_fields=False)
    @classmethod
    def _email(cls, value: Optional[str]) -> Optional[str]:
        return validate_email(value)

    @field_validator("phone", check_fields=False)
    @classmethod
    def _phone(cls, value: Optional[str]) -> Optional[str]:
        return validate_phone(value)


# Contacts

class ContactIn(_PersonFields):
    first_name: str = Field(min_length=1, max_length=50)
    last_name: str = Field(min_length=1, max_length=50)
    email: str = Field(max_length=100)
    phone: Optional[str] = Field(default=None, max_length=50)
    job_title: Optional[str] = Field(default=None, max_length=100)
    company: Optional[str] = Field(default=None, max_length=160)
    city: Optional[str] = Field(default=None, max_length=80)
    country: Optional[str] = Field(default=None, max_length=80)


class ContactUpdate(_PersonFields):
    first_name: Optional[str] = Field(default=None, min_length=1, max_length=50)
    last_name: Optional[str] = Field(default=None, min_length=1, max_length=50)
    email: Optional[str] = Field(default=None, max_length=100)
    phone: Optional[str] = Field(default=None, max_length=50)
    job_title: Optional[str] = Field(default=None, max_length=100)
    company: Optional[str] = Field(default=None, max_length=160)
    city: Optional[str] = Field(default=None, max_length=80)
    country: Optional[str] = Field(default=None, max_length=80)


# Accounts

class AccountIn(_PersonFields):
    name: str = Field(min_length=1, max_length=160)
    phone: Optional[str] = Field(default=None, max_length=50)
    email: Optional[str] = Field(default=None, max_length=100)
    website: Optional[str] = Field(default=None, max_length=200)
    city: Optional[str] = Field(default=None, max_length=80)
    country: Optional[str] = Field(default=None, max_length=80)


class AccountUpdate(_PersonFields):
    name: Optional[str] = Field(default=None, min_length=1, max_length=160)
    phone: Optional[str] = Field(default=None, max_length=50)
    email: Optional[str] = Field(default=None, max_length=100)
    website: Optional[str] = Field(default=None, max_length=200)
    city: Optional[str] = Field(default=None, max_length=80)
    country: Optional[str] = Field(default=None, max_length=80)


# Leads

class LeadIn(_PersonFields):
    first_name: str = Field(min_length=1, max_length=50)
    last_name: str = Field(min_length=1, max_length=50)
    email: str = Field(max_length=100)
    phone: Optional[str] = Field(default=None, max_length=50)
    company: Optional[str] = Field(default=None, max_length=160)
    job_title: Optional[str] = Field(default=None, max_length=100)
    subject: Optional[str] = Field(default=None, max_length=300)
    description: Optional[str] = Field(default=None, max_length=2000)


class LeadUpdate(_PersonFields):
    first_name: Optional[str] = Field(default=None, min_length=1, max_length=50)
    last_name: Optional[str] = Field(default=None, min_length=1, max_length=50)
    email: Optional[str] = Field(default=None, max_length=100)
    phone: Optional[str] = Field(default=None, max_length=50)
    company: Optional[str] = Field(default=None, max_length=160)
    job_title: Optional[str] = Field(default=None, max_length=100)
    subject: Optional[str] = Field(default=None, max_length=300)
    description: Optional[str] = Field(default=None, max_length=2000)


class LeadStatusUpdate(CamelModel):
    statecode: Optional[int] = Field(default=None, ge=0)
    statuscode: Optional[int] = Field(default=None, ge=0)

    @model_validator(mode="after")
    def _at_least_one(self) -> "LeadStatusUpdate":
        if self.statecode is None and self.statuscode is None:
            raise ValueError("statecode or statuscode is required")
        return self


# Opportunities

class OpportunityIn(CamelModel):
    name: str = Field(min_length=1, max_length=300)
    estimated_value: Optional[float] = Field(default=None, ge=0)
    estimated_close_date: Optional[date] = None
    description: Optional[str] = Field(default=None, max_length=2000)
    stage_name: Optional[str] = Field(default=None, max_length=200)


class OpportunityUpdate(CamelModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=300)
    estimated_value: Optional[float] = Field(default=None, ge=0)
    estimated_close_date: Optional[date] = None
    description: Optional[str] = Field(default=None, max_length=2000)
    stage_name: Optional[str] = Field(default=None, max_length=200)


# Website forms

class WebLeadIn(_PersonFields):
    """Lead capture form on the marketing site"""

    first_name: str = Field(min_length=1, max_length=50)
    last_name: str = Field(min_length=1, max_length=50)
    email: str = Field(max_length=100)
    phone: Optional[str] = Field(default=None, max_length=50)
    company: Optional[str] = Field(default=None, max_length=160)
    job_title: Optional[str] = Field(default=None, max_length=100)
    message: Optional[str] = Field(default=None, max_length=1000)
    interests: Optional[Union[List[str], str]] = None
    signup_source: Optional[str] = Field(default=None, max_length=100)
    website_signup_date: Optional[datetime] = None

    @field_validator("interests")
    @classmethod
    def _interests(cls, value: Optional[Union[List[str], str]]) -> Optional[Union[List[str], str]]:
        if isinstance(value, list):
            for item in value:
                if not 2 <= len(item.strip()) <= 50:
                    raise ValueError("each interest must be between 2 and 50 characters")
        return value


class WebContactIn(WebLeadIn):
    """Contact form on the marketing site"""

    city: Optional[str] = Field(default=None, max_length=80)
    country: Optional[str] = Field(default=None, max_length=80)


CREATE_SCHEMAS = {
    "contacts": ContactIn,
    "accounts": AccountIn,
    "leads": LeadIn,
    "opportunities": OpportunityIn,
}

UPDATE_SCHEMAS = {
    "contacts": ContactUpdate,
    "accounts": AccountUpdate,
    "leads": LeadUpdate,
    "opportunities": OpportunityUpdate,
}
