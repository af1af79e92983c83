from datetime import datetime, timezone

import pytest

from spiris import (
    Address,
    Article,
    Customer,
    Invoice,
    PaginatedResponse,
    PaginationParams,
    QueryParams,
)


def test_customer_reads_prefixed_addresses():
    data = {
        "Id": "c1",
        "Name": "Acme",
        "EmailAddress": "billing@acme.test",
        "InvoiceAddress1": "Main St 1",
        "InvoiceCity": "Stockholm",
        "ChangedUtc": "2024-05-01T10:00:00Z",
        "SomethingNew": "ignored",
    }
    customer = Customer.from_api(data)
    assert customer.email == "billing@acme.test"
    assert customer.invoice_address == Address(address1="Main St 1", city="Stockholm")
    assert customer.delivery_address is None
    assert customer.changed_utc == datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)


def test_customer_writes_only_set_fields():
    customer = Customer(name="Acme", delivery_address=Address(city="Oslo"))
    assert customer.to_api() == {"Name": "Acme", "DeliveryCity": "Oslo"}


def test_invoice_rows_and_amounts():
    invoice = Invoice.from_api(
        {
            "Id": "i1",
            "Rows": [
                {"UnitPrice": 50.0, "Quantity": 4, "DiscountPercentage": 10},
                {"Text": "note", "IsTextRow": True},
            ],
        }
    )
    assert len(invoice.rows) == 2  # noqa: PLR2004
    assert invoice.rows[0].amount == 180.0  # noqa: PLR2004
    assert invoice.rows[1].amount == 0.0
    assert invoice.to_api()["Rows"][1] == {"Text": "note", "IsTextRow": True}


def test_paginated_response_last_page():
    payload = {
        "Meta": {"CurrentPage": 3, "TotalNumberOfPages": 3},
        "Data": [{"Id": "a1", "Name": "Widget", "NetPrice": 9.5}],
    }
    page = PaginatedResponse.from_api(payload, Article)
    assert len(page) == 1
    assert page.data[0].net_price == 9.5  # noqa: PLR2004
    assert not page.has_next_page
    assert not PaginatedResponse.from_api({}, Article).has_next_page


def test_query_options_to_params():
    assert PaginationParams().to_params() == {}
    assert PaginationParams(page=2, pagesize=100).to_params() == {"page": "2", "pagesize": "100"}
    assert QueryParams(filter="IsActive eq true", select="Id,Name").to_params() == {
        "$filter": "IsActive eq true",
        "$select": "Id,Name",
    }


def test_seven_digit_fraction_and_short_fraction_parse():
    customer = Customer.from_api({"ChangedUtc": "2024-05-01T10:00:00.1234567Z"})
    assert customer.changed_utc == datetime(2024, 5, 1, 10, 0, 0, 123456, tzinfo=timezone.utc)
    article = Article.from_api({"ChangedUtc": "2024-05-01T10:00:00.5"})
    assert article.changed_utc == datetime(2024, 5, 1, 10, 0, 0, 500000)


def test_non_object_payloads_are_value_errors():
    with pytest.raises(ValueError):
        Customer.from_api(["Id", "c1"])
    with pytest.raises(ValueError):
        PaginatedResponse.from_api([1, 2], Article)
    with pytest.raises(ValueError):
        PaginatedResponse.from_api({"Data": {"Id": "a1"}}, Article)
    with pytest.raises(ValueError):
        Invoice.from_api({"Rows": "not rows"})
