"""Data-transfer objects for the customers, invoices and articles collections.

Python attribute names are snake_case; the API speaks PascalCase JSON. Each field carries
its wire name in ``metadata["api"]``. Unknown keys are ignored when reading and ``None``
values are left out when writing, so partial updates only send what was set.
"""

import re
from dataclasses import dataclass, field, fields
from datetime import datetime
from typing import Any


def api_field(name: str, default=None, **extra):
    if isinstance(default, list):
        return field(default_factory=list, metadata={"api": name, **extra})
    return field(default=default, metadata={"api": name, **extra})


# The API emits up to 7 fractional digits; fromisoformat on 3.10 takes exactly 3 or 6
_FRACTION = re.compile(r"\.(\d+)")


def _parse_datetime(value):
    if value is None or isinstance(value, datetime):
        return value
    text = str(value)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    text = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
    return datetime.fromisoformat(text)


class ApiModel:
    @classmethod
    def from_api(cls, data: dict | None, prefix: str = ""):
        data = data or {}
        if not isinstance(data, dict):
            raise ValueError(f"{cls.__name__} expects a JSON object, got {type(data).__name__}")
        values: dict[str, Any] = {}
        for f in fields(cls):
            meta = f.metadata
            if "prefix" in meta:
                nested = meta["model"].from_api(data, meta["prefix"])
                values[f.name] = nested if nested.to_api() else None
                continue
            key = prefix + meta["api"]
            if key not in data:
                continue
            raw = data[key]
            if "items" in meta:
                if raw is not None and not isinstance(raw, list):
                    raise ValueError(f"{key} must be a list, got {type(raw).__name__}")
                values[f.name] = [meta["items"].from_api(item) for item in raw or []]
            elif meta.get("kind") == "datetime":
                values[f.name] = _parse_datetime(raw)
            else:
                values[f.name] = raw
        return cls(**values)

    def to_api(self, prefix: str = "") -> dict:
        out: dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            meta = f.metadata
            if value is None:
                continue
            if "prefix" in meta:
                out.update(value.to_api(meta["prefix"]))
            elif "items" in meta:
                out[prefix + meta["api"]] = [item.to_api() for item in value]
            elif isinstance(value, datetime):
                out[prefix + meta["api"]] = value.isoformat()
            else:
                out[prefix + meta["api"]] = value
        return out


@dataclass
class Address(ApiModel):
    address1: str | None = api_field("Address1")
    address2: str | None = api_field("Address2")
    postal_code: str | None = api_field("PostalCode")
    city: str | None = api_field("City")
    country_code: str | None = api_field("CountryCode")


@dataclass
class Customer(ApiModel):
    id: str | None = api_field("Id")
    customer_number: str | None = api_field("CustomerNumber")
    corporate_identity_number: str | None = api_field("CorporateIdentityNumber")
    name: str | None = api_field("Name")
    email: str | None = api_field("EmailAddress")
    phone: str | None = api_field("Telephone")
    mobile_phone: str | None = api_field("MobilePhone")
    website: str | None = api_field("WwwAddress")
    is_active: bool | None = api_field("IsActive")
    is_private_person: bool | None = api_field("IsPrivatePerson")
    terms_of_payment_id: str | None = api_field("TermsOfPaymentId")
    note: str | None = api_field("Note")
    invoice_address: Address | None = field(
        default=None, metadata={"prefix": "Invoice", "model": Address}
    )
    delivery_address: Address | None = field(
        default=None, metadata={"prefix": "Delivery", "model": Address}
    )
    changed_utc: datetime | None = api_field("ChangedUtc", kind="datetime")


@dataclass
class InvoiceRow(ApiModel):
    line_number: int | None = api_field("LineNumber")
    article_id: str | None = api_field("ArticleId")
    article_number: str | None = api_field("ArticleNumber")
    text: str | None = api_field("Text")
    unit_price: float | None = api_field("UnitPrice")
    quantity: float | None = api_field("Quantity")
    discount_percentage: float | None = api_field("DiscountPercentage")
    is_text_row: bool | None = api_field("IsTextRow")

    @property
    def amount(self) -> float:
        total = (self.unit_price or 0.0) * (self.quantity or 0.0)
        return total * (1.0 - (self.discount_percentage or 0.0) / 100.0)


@dataclass
class Invoice(ApiModel):
    id: str | None = api_field("Id")
    invoice_number: int | None = api_field("InvoiceNumber")
    customer_id: str | None = api_field("CustomerId")
    invoice_date: datetime | None = api_field("InvoiceDate", kind="datetime")
    due_date: datetime | None = api_field("DueDate", kind="datetime")
    currency_code: str | None = api_field("CurrencyCode")
    your_reference: str | None = api_field("YourReference")
    our_reference: str | None = api_field("OurReference")
    total_amount: float | None = api_field("TotalAmount")
    total_vat_amount: float | None = api_field("TotalVatAmount")
    rows: list[InvoiceRow] = api_field("Rows", default=[], items=InvoiceRow)
    changed_utc: datetime | None = api_field("ChangedUtc", kind="datetime")


@dataclass
class Article(ApiModel):
    id: str | None = api_field("Id")
    number: str | None = api_field("Number")
    name: str | None = api_field("Name")
    unit_id: str | None = api_field("UnitId")
    unit_name: str | None = api_field("UnitName")
    net_price: float | None = api_field("NetPrice")
    gross_price: float | None = api_field("GrossPrice")
    coding_id: str | None = api_field("CodingId")
    is_active: bool | None = api_field("IsActive")
    changed_utc: datetime | None = api_field("ChangedUtc", kind="datetime")


@dataclass
class ResponseMetadata(ApiModel):
    current_page: int | None = api_field("CurrentPage")
    page_size: int | None = api_field("PageSize")
    total_number_of_pages: int | None = api_field("TotalNumberOfPages")
    total_number_of_results: int | None = api_field("TotalNumberOfResults")
    server_time_utc: datetime | None = api_field("ServerTimeUtc", kind="datetime")


@dataclass
class PaginatedResponse:
    data: list
    meta: ResponseMetadata = field(default_factory=ResponseMetadata)

    @classmethod
    def from_api(cls, payload: dict | None, item_cls) -> "PaginatedResponse":
        payload = payload or {}
        if not isinstance(payload, dict):
            raise ValueError(f"page expects a JSON object, got {type(payload).__name__}")
        items = payload.get("Data") or []
        if not isinstance(items, list):
            raise ValueError(f"page Data must be a list, got {type(items).__name__}")
        return cls(
            data=[item_cls.from_api(item) for item in items],
            meta=ResponseMetadata.from_api(payload.get("Meta")),
        )

    @property
    def has_next_page(self) -> bool:
        if self.meta.current_page is None or self.meta.total_number_of_pages is None:
            return False
        return self.meta.current_page < self.meta.total_number_of_pages

    def __len__(self) -> int:
        return len(self.data)

    def __iter__(self):
        return iter(self.data)


# ---------- query options ----------


@dataclass(frozen=True)
class PaginationParams:
    page: int | None = None
    pagesize: int | None = None

    def to_params(self) -> dict[str, str]:
        params = {}
        if self.page is not None:
            params["page"] = str(self.page)
        if self.pagesize is not None:
            params["pagesize"] = str(self.pagesize)
        return params


@dataclass(frozen=True)
class QueryParams:
    filter: str | None = None
    select: str | None = None
    orderby: str | None = None

    def to_params(self) -> dict[str, str]:
        params = {}
        if self.filter:
            params["$filter"] = self.filter
        if self.select:
            params["$select"] = self.select
        if self.orderby:
            params["$orderby"] = self.orderby
        return params
