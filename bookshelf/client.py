from httpx import AsyncClient, Response


class BookshelfClient:
    """Thin wrapper around httpx.AsyncClient for the bookshelf HTTP API.

    Client errors come back as dicts instead of exceptions, server errors raise.
    """

    def __init__(self, http: AsyncClient) -> None:
        self.http = http

    async def list_books(self) -> list[dict]:
        return self._handle(await self.http.get("/books"))

    async def get_book(self, book_id: str) -> dict:
        return self._handle(await self.http.get(f"/book/{book_id}"))

    async def create_book(self, title: str = "", author: str = "", id: str = "") -> dict:
        payload = {"id": id, "title": title, "author": author}
        return self._handle(await self.http.post("/books", json=payload))

    async def update_book(self, book_id: str, **fields: str) -> dict:
        return self._handle(await self.http.put(f"/book/{book_id}", json=fields))

    async def delete_book(self, book_id: str) -> list[dict]:
        return self._handle(await self.http.delete(f"/book/{book_id}"))

    def _handle(self, resp: Response) -> dict | list:
        if resp.status_code >= 500:
            raise RuntimeError(f"Server error {resp.status_code}: {resp.text}")
        if resp.status_code >= 400:
            try:
                detail = resp.json().get("error", resp.text)
            except ValueError:
                detail = resp.text
            return {"error": True, "status": resp.status_code, "detail": detail}
        return resp.json()
