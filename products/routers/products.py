from decimal import Decimal
from typing import List, Optional
from uuid import UUID
from fastapi import APIRouter, Depends, HTTPException, Query, Response, status, Path, Body
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.db import get_session
from products.domain.entities.product import ProductIn, ProductOut, ProductPage
from products.domain.repositories import ProductRepository
from products.services.product_service import ProductService

router = APIRouter(prefix="/v1/products", tags=["products"])

SORT_PATTERN = "^(name|price)$"
DIR_PATTERN = "^(asc|desc)$"

async def get_services(db: AsyncSession = Depends(get_session)) -> ProductService:
    return ProductService(ProductRepository(db))


# ==============================================================================
# Reads
# ==============================================================================

@router.get(
    "",
    summary="List all products",
    description=(
        "Returns every product. No pagination is applied; prefer `/paged` on large tables.\n\n"
        "`as_no_tracking=false` loads the rows as tracked entities (only useful for demos)."
    ),
    response_model=List[ProductOut],
)
async def list_products(
    as_no_tracking: bool = Query(True, description="Load rows without change tracking."),
    services: ProductService = Depends(get_services),
):
    return await services.list_all(as_no_tracking)

@router.get(
    "/search",
    summary="Search products by name and price range",
    description="Case-sensitive substring match on `name` combined with optional price bounds.",
    response_model=List[ProductOut],
)
async def search_products(
    name: Optional[str] = Query(None, description="Substring of the product name."),
    min_price: Optional[Decimal] = Query(None, ge=0, description="Lower price bound (inclusive)."),
    max_price: Optional[Decimal] = Query(None, ge=0, description="Upper price bound (inclusive)."),
    as_no_tracking: bool = Query(True),
    services: ProductService = Depends(get_services),
):
    return await services.search(name, min_price, max_price, as_no_tracking)

@router.get(
    "/query",
    summary="Filter and sort products",
    description="Builds a composed query (price bounds + ordering) and runs it in one round trip.",
    response_model=List[ProductOut],
)
async def query_products(
    min_price: Optional[Decimal] = Query(None, ge=0),
    max_price: Optional[Decimal] = Query(None, ge=0),
    sort: str = Query("name", pattern=SORT_PATTERN, description="Sort field."),
    dir: str = Query("asc", pattern=DIR_PATTERN, description="Sort direction."),
    as_no_tracking: bool = Query(True),
    services: ProductService = Depends(get_services),
):
    return await services.query(min_price, max_price, sort, dir, as_no_tracking)

@router.get(
    "/paged",
    summary="Paged product listing",
    description=(
        "Returns one page plus the total number of matching rows.\n\n"
        "Pages are 1-based; results are always ordered (by `sort`/`dir`, then id) "
        "so consecutive pages neither overlap nor skip rows."
    ),
    response_model=ProductPage,
    responses={
        200: {
            "description": "One page of products.",
            "content": {
                "application/json": {
                    "examples": {
                        "page": {
                            "summary": "Second page of ten",
                            "value": {
                                "page": 2,
                                "page_size": 10,
                                "total": 25,
                                "items": [
                                    {"id": "7e6f5a20-5a62-4e25-9b02-8a8af5f1a901", "name": "Item-10", "price": "10.00"}
                                ],
                            },
                        }
                    }
                }
            },
        },
    },
)
async def paged_products(
    page: int = Query(1, ge=1, description="1-based page number."),
    page_size: int = Query(10, ge=1, le=100, description="Page size (1–100)."),
    name: Optional[str] = Query(None, description="Substring of the product name."),
    sort: str = Query("name", pattern=SORT_PATTERN),
    dir: str = Query("asc", pattern=DIR_PATTERN),
    as_no_tracking: bool = Query(True),
    services: ProductService = Depends(get_services),
):
    items, total = await services.paged(page, page_size, name, sort, dir, as_no_tracking)
    return ProductPage(
        page=page,
        page_size=page_size,
        total=total,
        items=[ProductOut.model_validate(p) for p in items],
    )

@router.get(
    "/exists",
    summary="Check whether a product name exists",
    response_model=bool,
)
async def product_exists(
    name: str = Query(..., min_length=1, description="Exact product name."),
    services: ProductService = Depends(get_services),
):
    return await services.exists_by_name(name)

@router.get(
    "/count",
    summary="Count products, optionally within a price range",
    response_model=int,
)
async def count_products(
    min_price: Optional[Decimal] = Query(None, ge=0),
    max_price: Optional[Decimal] = Query(None, ge=0),
    services: ProductService = Depends(get_services),
):
    return await services.count(min_price, max_price)

@router.get(
    "/tx-active",
    summary="Whether the request's session has an explicit transaction open",
    description="Always `false` outside a transaction block; exposed to illustrate the check.",
    response_model=bool,
)
async def transaction_active(services: ProductService = Depends(get_services)):
    return services.has_active_transaction()

@router.get(
    "/{product_id}",
    summary="Get product by ID",
    response_model=ProductOut,
    responses={
        404: {
            "description": "Product not found.",
            "content": {"application/json": {"examples": {"not_found": {"value": {"detail": "not found"}}}}},
        },
    },
)
async def get_product(
    product_id: UUID = Path(..., description="Product UUID"),
    services: ProductService = Depends(get_services),
):
    obj = await services.get(product_id)
    if not obj:
        raise HTTPException(status_code=404, detail="not found")
    return obj


# ==============================================================================
# Writes
# ==============================================================================

@router.post(
    "",
    summary="Create product",
    description="Creates a product. An `id` is generated when the body does not carry one.",
    response_model=ProductOut,
    status_code=status.HTTP_201_CREATED,
    responses={409: {"description": "A product with this id already exists."}},
)
async def create_product(
    payload: ProductIn,
    response: Response,
    services: ProductService = Depends(get_services),
):
    obj = await services.create(payload)
    response.headers["Location"] = f"{router.prefix}/{obj.id}"
    return obj

@router.post(
    "/bulk",
    summary="Create many products in one flush",
    responses={
        200: {"content": {"application/json": {"examples": {"created": {"value": {"created": 3}}}}}},
    },
)
async def create_products_bulk(
    payload: List[ProductIn] = Body(..., description="Products to create."),
    services: ProductService = Depends(get_services),
):
    created = await services.create_many(payload)
    return {"created": created}

@router.post(
    "/tx-demo",
    summary="Transaction demo",
    description=(
        "Inserts two products (`Tx A`, `Tx B`) inside one transaction.\n\n"
        "With `fail=true` an error is raised after both inserts; the transaction rolls back "
        "and neither product is persisted."
    ),
    responses={
        200: {"content": {"application/json": {"examples": {"ok": {"value": {"ok": True, "fail": False}}}}}},
        500: {"description": "Deliberate failure; the transaction was rolled back."},
    },
)
async def transaction_demo(
    fail: bool = Query(False, description="Raise after the inserts to force a rollback."),
    services: ProductService = Depends(get_services),
):
    await services.transaction_demo(fail)
    return {"ok": True, "fail": fail}

@router.put(
    "/bulk",
    summary="Replace many products",
    description="Every item must carry its `id`. All columns of every item are written.",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={
        400: {"description": "At least one item has no id."},
        404: {"description": "At least one id does not exist; nothing was written."},
    },
)
async def update_products_bulk(
    payload: List[ProductIn] = Body(...),
    services: ProductService = Depends(get_services),
):
    if any(p.id is None for p in payload):
        raise HTTPException(status_code=400, detail="every item must have an id")
    await services.replace_many(payload)
    return Response(status_code=status.HTTP_204_NO_CONTENT)

@router.put(
    "/{product_id}",
    summary="Replace product",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={
        400: {"description": "Body id differs from the path id."},
        404: {"description": "Product not found."},
    },
)
async def update_product(
    product_id: UUID = Path(..., description="Product UUID"),
    payload: ProductIn = Body(...),
    services: ProductService = Depends(get_services),
):
    if payload.id is not None and payload.id != product_id:
        raise HTTPException(status_code=400, detail="body id differs from path id")
    obj = await services.replace(product_id, payload)
    if not obj:
        raise HTTPException(status_code=404, detail="not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)

@router.delete(
    "/{product_id}",
    summary="Delete product",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={404: {"description": "Product not found."}},
)
async def delete_product(
    product_id: UUID = Path(..., description="Product UUID"),
    services: ProductService = Depends(get_services),
):
    ok = await services.delete(product_id)
    if not ok:
        raise HTTPException(status_code=404, detail="not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
