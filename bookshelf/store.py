"""In-memory record store for books.

Books live only for the lifetime of the process. Ids are not unique; every
id-based operation addresses the first match in insertion order.
"""

import dataclasses
from collections.abc import Iterable
from threading import RLock

from fastapi import Request

from bookshelf.models import Book

SEED_BOOKS = (
    Book(id="1", title="Book 1", author="Author 1"),
    Book(id="2", title="Book 2", author="Author 2"),
)


class BookStore:
    def __init__(self, books: Iterable[Book] = SEED_BOOKS) -> None:
        self._lock = RLock()
        self._books: list[Book] = [dataclasses.replace(b) for b in books]

    def __len__(self) -> int:
        with self._lock:
            return len(self._books)

    def _index(self, book_id: str) -> int | None:
        for index, book in enumerate(self._books):
            if book.id == book_id:
                return index
        return None

    def all(self) -> list[Book]:
        with self._lock:
            return [dataclasses.replace(b) for b in self._books]

    def get(self, book_id: str) -> Book | None:
        with self._lock:
            index = self._index(book_id)
            return None if index is None else dataclasses.replace(self._books[index])

    def add(self, book: Book) -> Book:
        with self._lock:
            self._books.append(dataclasses.replace(book))
            return dataclasses.replace(book)

    def replace(self, book_id: str, book: Book) -> Book | None:
        """Overwrite the first book with ``book_id``, keeping ``book_id`` as its id."""
        with self._lock:
            index = self._index(book_id)
            if index is None:
                return None
            self._books[index] = dataclasses.replace(book, id=book_id)
            return dataclasses.replace(self._books[index])

    def remove(self, book_id: str) -> list[Book]:
        """Drop the first book with ``book_id``, if any, and return what is left."""
        with self._lock:
            index = self._index(book_id)
            if index is not None:
                del self._books[index]
            return [dataclasses.replace(b) for b in self._books]


def get_store(request: Request) -> BookStore:
    return request.app.state.store
