from pydantic import BaseModel, EmailStr, Field, field_validator
from typing import List, Optional
from uuid import UUID
from datetime import date, datetime
from decimal import Decimal

from app.common.validators import (
    normalize_indonesia_phone, validate_indonesia_phone,
    validate_cooperative_code, validate_registration_number
)
from app.modules.cooperatives.models import BusinessType, OperationalStatus


def _check_phone(v):
    if v is None or v.strip() == "":
        return None
    if not validate_indonesia_phone(v):
        raise ValueError('Nomor telepon tidak valid. Gunakan format +62, 62 atau 0 diikuti 9-13 digit')
    return normalize_indonesia_phone(v)


def _check_establishment_date(v):
    if v is not None and v > date.today():
        raise ValueError('Tanggal pendirian tidak boleh di masa depan')
    return v


class CooperativeCreate(BaseModel):
    name: str = Field(..., min_length=3, max_length=255)
    code: str = Field(..., min_length=2, max_length=10)
    registration_number: str = Field(..., max_length=50)
    address: Optional[str] = None
    phone: Optional[str] = Field(None, max_length=20)
    email: Optional[EmailStr] = None
    chairman_name: Optional[str] = Field(None, max_length=255)
    manager_name: Optional[str] = Field(None, max_length=255)
    establishment_date: Optional[date] = None
    business_type: BusinessType = BusinessType.SIMPAN_PINJAM
    operational_status: OperationalStatus = OperationalStatus.ACTIVE
    total_members: int = Field(0, ge=0)
    active_members: int = Field(0, ge=0)
    total_assets: Decimal = Field(Decimal("0"), ge=0)

    @field_validator('name')
    @classmethod
    def strip_name(cls, v):
        v = v.strip()
        if len(v) < 3:
            raise ValueError('Nama koperasi minimal 3 karakter')
        return v

    @field_validator('code')
    @classmethod
    def validate_code(cls, v):
        if not validate_cooperative_code(v):
            raise ValueError('Kode koperasi harus 2-10 karakter (huruf, angka atau tanda hubung)')
        return v.strip().upper()

    @field_validator('registration_number')
    @classmethod
    def validate_registration(cls, v):
        if not validate_registration_number(v):
            raise ValueError('Nomor badan hukum tidak valid')
        return v.strip()

    @field_validator('phone')
    @classmethod
    def validate_phone(cls, v):
        return _check_phone(v)

    @field_validator('email')
    @classmethod
    def lower_email(cls, v):
        return v.lower() if v else v

    @field_validator('establishment_date')
    @classmethod
    def validate_establishment_date(cls, v):
        return _check_establishment_date(v)


class CooperativeUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=3, max_length=255)
    registration_number: Optional[str] = Field(None, max_length=50)
    address: Optional[str] = None
    phone: Optional[str] = Field(None, max_length=20)
    email: Optional[EmailStr] = None
    chairman_name: Optional[str] = Field(None, max_length=255)
    manager_name: Optional[str] = Field(None, max_length=255)
    establishment_date: Optional[date] = None
    business_type: Optional[BusinessType] = None
    operational_status: Optional[OperationalStatus] = None
    total_members: Optional[int] = Field(None, ge=0)
    active_members: Optional[int] = Field(None, ge=0)
    total_assets: Optional[Decimal] = Field(None, ge=0)

    @field_validator('registration_number')
    @classmethod
    def validate_registration(cls, v):
        if v is not None and not validate_registration_number(v):
            raise ValueError('Nomor badan hukum tidak valid')
        return v.strip() if v else v

    @field_validator('phone')
    @classmethod
    def validate_phone(cls, v):
        return _check_phone(v)

    @field_validator('email')
    @classmethod
    def lower_email(cls, v):
        return v.lower() if v else v

    @field_validator('establishment_date')
    @classmethod
    def validate_establishment_date(cls, v):
        return _check_establishment_date(v)


class CooperativeOut(BaseModel):
    id: UUID
    name: str
    code: str
    registration_number: str
    address: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    chairman_name: Optional[str] = None
    manager_name: Optional[str] = None
    establishment_date: Optional[date] = None
    business_type: BusinessType
    operational_status: OperationalStatus
    total_members: int
    active_members: int
    total_assets: Decimal
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class CooperativeList(BaseModel):
    items: List[CooperativeOut]
    total: int
    page: int
    per_page: int
