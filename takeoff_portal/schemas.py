from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class LoginRequest(CamelModel):
    email: str
    password: str


class PasswordChangeRequest(CamelModel):
    current_password: str
    new_password: str
    confirm_password: str


class SelectCompanyRequest(CamelModel):
    company_id: int


class TakeoffFields(CamelModel):
    customer_name: str | None = None
    foreman: str | None = Field(default=None, alias='foremen')
    ship_to: str | None = None
    lot: str | None = None
    model_type: str | None = Field(default=None, alias='type')
    elevation: str | None = Field(default=None, alias='elev')
    sq_footage: str | None = None
    street_name: str | None = None
    doors_style: str | None = None
    comment: str | None = None
    extras: str | None = None
    measurements: dict[str, list[dict]] | None = None

    def changes(self) -> dict:
        return self.model_dump(exclude_unset=True, by_alias=False)


class TakeoffCreate(TakeoffFields):
    carpenter_id: int | None = Field(default=None, alias='carpentry')
    trim_carpenter_id: int | None = Field(default=None, alias='trimCarpentry')

    def changes(self) -> dict:
        return self.model_dump(
            exclude_unset=True,
            by_alias=False,
            exclude={'carpenter_id', 'trim_carpenter_id'},
        )


class StatusUpdate(CamelModel):
    # Left loose so out-of-range and non-numeric values reach the status parser.
    status: int | str


class CarpenterAssignment(CamelModel):
    carpenter_id: int


class TrimCarpenterAssignment(CamelModel):
    trim_carpenter_id: int


class CompanyAddress(CamelModel):
    street: str | None = None
    city: str | None = None
    province: str | None = None
    postal_code: str | None = None
    country: str | None = None


class CompanyCreate(CamelModel):
    name: str
    business_number: str | None = None
    tax_number: str | None = None
    industry: str | None = None
    address: CompanyAddress | None = None
    phone: str | None = None
    email: str | None = None
    website: str | None = None

    def fields(self) -> dict:
        data = self.model_dump(exclude={'address'}, by_alias=False)
        if self.address is not None:
            data.update(self.address.model_dump(by_alias=False))
        return data
