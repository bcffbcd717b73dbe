from pydantic import BaseModel, ConfigDict


class BookIn(BaseModel):
    """Request body for create and update. Missing fields default to empty strings."""

    id: str = ""
    title: str = ""
    author: str = ""


class BookResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    author: str


class ErrorResponse(BaseModel):
    error: str
