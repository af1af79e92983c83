import asyncio
import urllib.parse

from .models import Article, Customer, Invoice, PaginatedResponse, PaginationParams, QueryParams


# ---------- request building shared by sync/async endpoints ----------
class _ResourceEndpoint:
    path = ""
    model = None

    def __init__(self, client):
        self._client = client

    def _item_path(self, item_id: str) -> str:
        if not item_id:
            raise ValueError(f"{self.path}: an id is required")
        return f"{self.path}/{urllib.parse.quote(str(item_id), safe='')}"

    @staticmethod
    def _params(pagination: PaginationParams | None, query: QueryParams | None) -> dict:
        params: dict[str, str] = {}
        if pagination is not None:
            params.update(pagination.to_params())
        if query is not None:
            params.update(query.to_params())
        return params

    def _decode_page(self, response) -> PaginatedResponse:
        return PaginatedResponse.from_api(response.json(), self.model)

    def _decode_item(self, response):
        return self.model.from_api(response.json())

    @staticmethod
    def _body(item) -> dict:
        return item.to_api() if hasattr(item, "to_api") else dict(item)


# ---------- requests (sync) ----------
class ResourceEndpoint(_ResourceEndpoint):
    def list(self, pagination=None, query=None) -> PaginatedResponse:
        return self._client.request(
            "GET", self.path, params=self._params(pagination, query), decode=self._decode_page
        )

    def search(self, filter: str, pagination=None) -> PaginatedResponse:
        return self.list(pagination, QueryParams(filter=filter))

    def get(self, item_id: str):
        return self._client.request("GET", self._item_path(item_id), decode=self._decode_item)

    def create(self, item):
        return self._client.request(
            "POST", self.path, json=self._body(item), decode=self._decode_item
        )

    def update(self, item_id: str, item):
        return self._client.request(
            "PUT", self._item_path(item_id), json=self._body(item), decode=self._decode_item
        )

    def delete(self, item_id: str) -> None:
        self._client.request("DELETE", self._item_path(item_id), decode=lambda resp: None)


class CustomersEndpoint(ResourceEndpoint):
    path = "customers"
    model = Customer


class InvoicesEndpoint(ResourceEndpoint):
    path = "invoices"
    model = Invoice


class ArticlesEndpoint(ResourceEndpoint):
    path = "articles"
    model = Article


# ---------- httpx (async) ----------
class AsyncResourceEndpoint(_ResourceEndpoint):
    async def list(self, pagination=None, query=None) -> PaginatedResponse:
        return await self._client.request(
            "GET", self.path, params=self._params(pagination, query), decode=self._decode_page
        )

    async def search(self, filter: str, pagination=None) -> PaginatedResponse:
        return await self.list(pagination, QueryParams(filter=filter))

    async def get(self, item_id: str):
        return await self._client.request(
            "GET", self._item_path(item_id), decode=self._decode_item
        )

    async def create(self, item):
        return await self._client.request(
            "POST", self.path, json=self._body(item), decode=self._decode_item
        )

    async def update(self, item_id: str, item):
        return await self._client.request(
            "PUT", self._item_path(item_id), json=self._body(item), decode=self._decode_item
        )

    async def delete(self, item_id: str) -> None:
        await self._client.request("DELETE", self._item_path(item_id), decode=lambda resp: None)

    def delete_task(self, item_id: str) -> asyncio.Task:
        """Schedule a delete in the background.

        The returned task must be awaited (or have its result inspected); failures are
        raised from it as ClientError like any other call. Cancelling it abandons the
        request without touching client state.
        """
        return asyncio.create_task(self.delete(item_id))


class AsyncCustomersEndpoint(AsyncResourceEndpoint):
    path = "customers"
    model = Customer


class AsyncInvoicesEndpoint(AsyncResourceEndpoint):
    path = "invoices"
    model = Invoice


class AsyncArticlesEndpoint(AsyncResourceEndpoint):
    path = "articles"
    model = Article
