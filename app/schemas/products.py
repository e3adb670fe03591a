from datetime import datetime

from pydantic import BaseModel, Field


class CategoryResponse(BaseModel):
    id: int
    name: str
    slug: str
    description: str | None = None

    model_config = {"from_attributes": True}


class ProductResponse(BaseModel):
    id: int
    name: str
    slug: str
    description: str | None = None
    price_elurc: int
    price_eur: int
    stock: int
    low_stock_threshold: int
    in_stock: bool
    images: list[str] = []
    category: CategoryResponse | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}


class ProductCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    slug: str | None = Field(default=None, max_length=255)
    description: str | None = None
    price_elurc: int = Field(gt=0)
    price_eur: int = Field(ge=0)
    category_id: int
    stock: int = Field(default=0, ge=0)
    low_stock_threshold: int = Field(default=5, ge=0)
    images: list[str] = []


class ProductUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    slug: str | None = Field(default=None, max_length=255)
    description: str | None = None
    price_elurc: int | None = Field(default=None, gt=0)
    price_eur: int | None = Field(default=None, ge=0)
    category_id: int | None = None
    stock: int | None = Field(default=None, ge=0)
    low_stock_threshold: int | None = Field(default=None, ge=0)
    images: list[str] | None = None


class ProductStatsResponse(BaseModel):
    total: int
    out_of_stock: int
    low_stock: int
