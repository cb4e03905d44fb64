"""
Onboarding Forms - field validation for the data-entry steps.

Each step validates its own fields here before any gated action runs
(sending a verification code, starting the website scrape, leaving the
step). Errors come back as {field: message} maps; the presentation layer
only shows errors for fields the user has already touched.
"""

import logging
import re
from collections.abc import Iterable

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .lookup.fetcher import validate_url

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MIN_NAME_LENGTH = 2
MIN_PASSWORD_LENGTH = 8


# =============================================================================
# Form Models
# =============================================================================

class UserRegistrationForm(BaseModel):
    """Step 1: account details. Completed by verifying the email address."""

    model_config = ConfigDict(validate_default=True)

    name: str = Field(default="", description="Full name")
    email: str = Field(default="", description="Email address the code is sent to")
    password: str = Field(default="", description="Account password")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if len(v.strip()) < MIN_NAME_LENGTH:
            raise ValueError(f"Name must be at least {MIN_NAME_LENGTH} characters")
        return v

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        if not EMAIL_PATTERN.match(v.strip()):
            raise ValueError("Please enter a valid email address")
        return v

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        if len(v) < MIN_PASSWORD_LENGTH:
            raise ValueError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
        return v


class OrganizationForm(BaseModel):
    """Step 2: the organization the chatbot is trained for."""

    model_config = ConfigDict(validate_default=True)

    company_name: str = Field(default="", description="Company name")
    website_url: str = Field(default="", description="Company website (http or https)")
    description: str = Field(default="", description="What the company does")

    @field_validator("company_name")
    @classmethod
    def validate_company_name(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Company name is required")
        return v

    @field_validator("website_url")
    @classmethod
    def validate_website_url(cls, v: str) -> str:
        error = validate_url(v)
        if error:
            raise ValueError(error)
        return v.strip()

    @field_validator("description")
    @classmethod
    def validate_description(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Description is required")
        return v


# =============================================================================
# Validation Helpers
# =============================================================================

def collect_field_errors(form_cls: type[BaseModel], data: dict) -> dict[str, str]:
    """Validate data against form_cls and return {field: first error message}."""
    try:
        form_cls(**data)
    except ValidationError as e:
        errors: dict[str, str] = {}
        for error in e.errors():
            field = str(error["loc"][0]) if error["loc"] else "__root__"
            message = error["msg"].removeprefix("Value error, ")
            errors.setdefault(field, message)
        return errors
    return {}


def visible_errors(errors: dict[str, str], touched: Iterable[str]) -> dict[str, str]:
    """Only the errors for fields the user has interacted with."""
    touched = set(touched)
    return {field: message for field, message in errors.items() if field in touched}


def validate_user_registration(data: dict) -> tuple[bool, dict[str, str]]:
    """
    Validate the registration fields.

    Returns:
        (is_valid, {field: message})
    """
    errors = collect_field_errors(UserRegistrationForm, data)
    if errors:
        logger.debug(f"Registration fields invalid: {sorted(errors)}")
    return (len(errors) == 0, errors)


def validate_organization(data: dict) -> tuple[bool, dict[str, str]]:
    """
    Validate the organization fields.

    Returns:
        (is_valid, {field: message})
    """
    errors = collect_field_errors(OrganizationForm, data)
    return (len(errors) == 0, errors)
