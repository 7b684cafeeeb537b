"""
Pydantic schemas for the /identify endpoint
Handles request validation and response serialization
Treats "null" strings and blanks as absent values
"""

import re
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field, field_validator, model_validator

_ABSENT = {"", "null", "none"}


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and value.strip().lower() in _ABSENT:
        return None
    return value


class IdentifyRequest(BaseModel):
    """
    Request schema for the /identify endpoint
    At least one of email or phoneNumber must be present after cleaning
    """
    email: Optional[str] = Field(
        None,
        max_length=255,
        description="Customer email address",
        examples=["customer@example.com", None]
    )
    phoneNumber: Optional[Union[str, int]] = Field(
        None,
        description="Customer phone number, string or number",
        examples=["+1234567890", "123-456-7890", 123456, None]
    )

    @field_validator('email', mode='before')
    @classmethod
    def validate_email(cls, v) -> Optional[str]:
        v = _blank_to_none(v)
        if v is None:
            return None
        if not isinstance(v, str):
            raise ValueError('Email must be a string')

        v = v.strip()
        if '@' not in v or v.startswith('@') or v.endswith('@'):
            raise ValueError('Invalid email format: expected local@domain')
        return v

    @field_validator('phoneNumber', mode='before')
    @classmethod
    def validate_phone_number(cls, v) -> Optional[str]:
        """
        Accept numbers as well as strings; the phone number is stored
        as submitted, only stripped of surrounding whitespace
        """
        v = _blank_to_none(v)
        if v is None:
            return None
        if isinstance(v, bool):
            raise ValueError('Phone number must be a string or number')
        if isinstance(v, float) and not v.is_integer():
            raise ValueError('Phone number must be a whole number')
        if isinstance(v, (int, float)):
            v = str(int(v))
        if not isinstance(v, str):
            raise ValueError('Phone number must be a string or number')

        v = v.strip()
        if len(re.sub(r'\D', '', v)) < 3:
            raise ValueError('Phone number must contain at least 3 digits')
        if len(v) > 20:
            raise ValueError('Phone number must be at most 20 characters')
        return v

    @model_validator(mode='after')
    def validate_at_least_one_field(self):
        if not self.email and not self.phoneNumber:
            raise ValueError('Either email or phoneNumber must be provided')
        return self

    class Config:
        populate_by_name = True
        json_schema_extra = {
            "examples": [
                {"email": "customer@example.com", "phoneNumber": "+1234567890"},
                {"email": "customer@example.com", "phoneNumber": None},
                {"email": None, "phoneNumber": "123-456-7890"},
                {"email": "null", "phoneNumber": 123456}
            ]
        }


class ContactResponse(BaseModel):
    """
    Consolidated identity: the primary contact plus everything linked to it
    """
    primaryContactId: int = Field(
        description="ID of the primary contact"
    )
    emails: List[str] = Field(
        description="All email addresses of the identity, primary contact's first",
        examples=[["customer@example.com", "customer2@example.com"]]
    )
    phoneNumbers: List[str] = Field(
        description="All phone numbers of the identity, primary contact's first",
        examples=[["+1234567890", "123-456-7890"]]
    )
    secondaryContactIds: List[int] = Field(
        description="IDs of all secondary contacts, oldest first",
        examples=[[2, 3, 4]]
    )


class IdentifyResponse(BaseModel):
    """
    Response schema for the /identify endpoint
    """
    contact: ContactResponse = Field(
        description="Consolidated contact information"
    )

    class Config:
        json_schema_extra = {
            "example": {
                "contact": {
                    "primaryContactId": 1,
                    "emails": ["customer@example.com", "customer2@example.com"],
                    "phoneNumbers": ["+1234567890", "123-456-7890"],
                    "secondaryContactIds": [2, 3]
                }
            }
        }


class ErrorResponse(BaseModel):
    """
    Error response schema for API errors
    """
    error: str = Field(
        description="Error type or category"
    )
    message: str = Field(
        description="Human-readable error message"
    )
    details: Optional[Dict[str, Any]] = Field(
        None,
        description="Additional error details"
    )

    class Config:
        json_schema_extra = {
            "examples": [
                {
                    "error": "ValidationError",
                    "message": "Either email or phoneNumber must be provided",
                    "details": {"field": "root"}
                },
                {
                    "error": "StoreUnavailable",
                    "message": "Contact store is currently unavailable"
                }
            ]
        }
