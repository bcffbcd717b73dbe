from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from pydantic import TypeAdapter, ValidationError

from bookshelf.models import Book
from bookshelf.schemas.book import BookIn, BookResponse, ErrorResponse
from bookshelf.store import BookStore, get_store

BOOK_NOT_FOUND = "Book not found"

router = APIRouter(tags=["books"])

_book_or_null = TypeAdapter(BookIn | None)


async def book_body(request: Request) -> BookIn:
    """Decode the request body into a BookIn. A JSON ``null`` decodes to an empty book."""
    body = await request.body()
    try:
        data = _book_or_null.validate_json(body)
    except ValidationError as e:
        errors = [{**err, "loc": ("body", *err["loc"])} for err in e.errors(include_url=False)]
        raise RequestValidationError(errors, body=body) from e
    return data if data is not None else BookIn()


def existing_book_id(id: str, store: BookStore = Depends(get_store)) -> str:
    if store.get(id) is None:
        raise HTTPException(status_code=404, detail=BOOK_NOT_FOUND)
    return id


@router.get("/books", response_model=list[BookResponse])
async def list_books(store: BookStore = Depends(get_store)):
    return store.all()


@router.get(
    "/book/{id}",
    response_model=BookResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_book(id: str, store: BookStore = Depends(get_store)):
    book = store.get(id)
    if book is None:
        raise HTTPException(status_code=404, detail=BOOK_NOT_FOUND)
    return book


@router.post(
    "/books",
    response_model=BookResponse,
    status_code=201,
    responses={400: {"model": ErrorResponse}},
)
async def create_book(data: BookIn = Depends(book_body), store: BookStore = Depends(get_store)):
    return store.add(Book(**data.model_dump()))


@router.put(
    "/book/{id}",
    response_model=BookResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def update_book(
    id: str = Depends(existing_book_id),
    data: BookIn = Depends(book_body),
    store: BookStore = Depends(get_store),
):
    # The id is looked up before the body is read. Full overwrite: fields
    # missing from the body are reset, the path id always wins.
    book = store.replace(id, Book(**data.model_dump()))
    if book is None:
        raise HTTPException(status_code=404, detail=BOOK_NOT_FOUND)
    return book


@router.delete("/book/{id}", response_model=list[BookResponse])
async def delete_book(id: str, store: BookStore = Depends(get_store)):
    return store.remove(id)
