"""
Budget Tracker - Request Schemas

PURPOSE: Pydantic models for JSON request bodies
SCOPE: Shape only; business rules live in validators.py
DEPENDENCIES: pydantic
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, AliasChoices


class IncomePayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: Optional[str] = None
    date: Optional[str] = None
    # Older clients send "desc"
    description: Optional[str] = Field(
        default=None, validation_alias=AliasChoices('description', 'desc')
    )
    amount: Any = None
    notes: Optional[str] = None


class ExpensePayload(IncomePayload):
    category: Optional[str] = None


class CategoryPayload(BaseModel):
    name: str = ''


class RegisterPayload(BaseModel):
    name: str = ''
    email: str = ''
    password: str = ''


class LoginPayload(BaseModel):
    email: str = ''
    password: str = ''


class SettingsPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    theme: Optional[str] = None
    active_tab: Optional[str] = Field(
        default=None, validation_alias=AliasChoices('activeTab', 'active_tab')
    )
