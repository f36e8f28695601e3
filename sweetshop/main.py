"""
Sweets Service API

This module implements a FastAPI-based service for a sweet shop catalog.
Authenticated users browse, search and purchase sweets; admins create,
edit, delete and restock them. Purchases and restocks are atomic per sweet,
so concurrent requests never oversell or lose an update.

Endpoints:
    POST /api/auth/register: Create an account and receive a token
    POST /api/auth/login: Exchange credentials for a token
    GET /api/sweets: List all sweets
    GET /api/sweets/search: Filter sweets by name, category and price range
    GET /api/sweets/{sweet_id}: Get a single sweet
    POST /api/sweets: Create a sweet (admin)
    PUT /api/sweets/{sweet_id}: Update a sweet's metadata (admin)
    DELETE /api/sweets/{sweet_id}: Delete a sweet (admin)
    POST /api/sweets/{sweet_id}/purchase: Buy units of a sweet
    POST /api/sweets/{sweet_id}/restock: Add units of a sweet (admin)
    GET /health: Health check endpoint for orchestration systems

Attributes:
    app (FastAPI): The FastAPI application instance configured with the title "sweets-service"
"""
from contextlib import asynccontextmanager
from decimal import Decimal
from typing import List, Optional
import logging
import uvicorn
from fastapi import APIRouter, Depends, FastAPI, Query, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from . import auth, models, schemas
from .access import Action, Principal
from .catalog import CatalogService
from .config import HOST, LOG_LEVEL, PORT
from .database import SessionLocal, engine, get_db
from .errors import (
    AccessDenied,
    AuthError,
    Conflict,
    InsufficientStock,
    InvalidArgument,
    LockTimeout,
    NotFound,
    NothingToUpdate,
    StorageError,
    SweetShopError,
)
from .stock import StockTransactionManager
from .store import SweetStore

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

ERROR_STATUS = {
    InvalidArgument: status.HTTP_400_BAD_REQUEST,
    InsufficientStock: status.HTTP_400_BAD_REQUEST,
    NothingToUpdate: status.HTTP_400_BAD_REQUEST,
    NotFound: status.HTTP_404_NOT_FOUND,
    Conflict: status.HTTP_409_CONFLICT,
    AuthError: status.HTTP_401_UNAUTHORIZED,
    AccessDenied: status.HTTP_403_FORBIDDEN,
    LockTimeout: status.HTTP_503_SERVICE_UNAVAILABLE,
    StorageError: status.HTTP_500_INTERNAL_SERVER_ERROR,
}

# Built once; every request shares the store and therefore its item locks
store = SweetStore(SessionLocal)
catalog_service = CatalogService(store)
stock_manager = StockTransactionManager(store)


def get_catalog() -> CatalogService:
    return catalog_service


def get_stock_manager() -> StockTransactionManager:
    return stock_manager


@asynccontextmanager
async def lifespan(_: FastAPI):
    # Create database tables
    models.Base.metadata.create_all(bind=engine)
    yield


app = FastAPI(title="sweets-service", lifespan=lifespan)


@app.exception_handler(SweetShopError)
def handle_service_error(request: Request, exc: SweetShopError):
    """
    Translate a service error into an HTTP response.

    The status code is chosen from the most specific class listed in ERROR_STATUS.
    """
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    for cls in type(exc).__mro__:
        if cls in ERROR_STATUS:
            status_code = ERROR_STATUS[cls]
            break
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, AuthError) else None
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.code}: {exc.message}")
    return JSONResponse(
        status_code=status_code,
        content={"message": exc.message, "code": exc.code},
        headers=headers,
    )


@app.exception_handler(RequestValidationError)
def handle_validation_error(request: Request, exc: RequestValidationError):
    """Malformed request bodies and parameters are reported as invalid arguments."""
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "message": "Invalid request",
            "code": InvalidArgument.code,
            "errors": [
                {"loc": list(error.get("loc", ())), "msg": error.get("msg", "")}
                for error in exc.errors()
            ],
        },
    )


@app.exception_handler(Exception)
def handle_unexpected_error(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"message": "Server error"})


@app.get("/health", response_model=dict)
def health():
    """
    Health check endpoint for the sweets service.

    Returns:
        dict: {"status": "ok"} when the service is operational.
    """
    return {"status": "ok"}


auth_router = APIRouter(prefix="/api/auth", tags=["auth"])


@auth_router.post("/register", response_model=schemas.AuthResponse, status_code=status.HTTP_201_CREATED)
def register(user: schemas.UserRegister, db: Session = Depends(get_db)):
    """
    Register a new user account.

    Raises:
        Conflict: 409 if the email is already registered
    """
    return auth.register_user(db, user)


@auth_router.post("/login", response_model=schemas.AuthResponse)
def login(credentials: schemas.UserLogin, db: Session = Depends(get_db)):
    """
    Authenticate and login a user.

    Raises:
        AuthError: 401 if credentials are invalid
    """
    return auth.login_user(db, credentials.email, credentials.password)


sweets_router = APIRouter(prefix="/api/sweets", tags=["sweets"])


@sweets_router.post("", response_model=schemas.Sweet, status_code=status.HTTP_201_CREATED)
def create_sweet(
    sweet: schemas.SweetCreate,
    catalog: CatalogService = Depends(get_catalog),
    principal: Principal = Depends(auth.requires(Action.CREATE)),
):
    """Create a new sweet (admin only)."""
    return catalog.create(sweet.model_dump())


@sweets_router.get("", response_model=List[schemas.Sweet])
def list_sweets(
    catalog: CatalogService = Depends(get_catalog),
    principal: Principal = Depends(auth.requires(Action.READ)),
):
    """List all sweets ordered by id (authenticated users only)."""
    return catalog.list()


@sweets_router.get("/search", response_model=List[schemas.Sweet])
def search_sweets(
    name: Optional[str] = None,
    category: Optional[str] = None,
    min_price: Optional[Decimal] = Query(None, alias="minPrice"),
    max_price: Optional[Decimal] = Query(None, alias="maxPrice"),
    catalog: CatalogService = Depends(get_catalog),
    principal: Principal = Depends(auth.requires(Action.SEARCH)),
):
    """
    Search sweets (authenticated users only).

    Args:
        name: Case-insensitive substring of the name
        category: Exact category
        min_price: Inclusive lower price bound (query parameter minPrice)
        max_price: Inclusive upper price bound (query parameter maxPrice)

    Returns:
        Matching sweets ordered by id
    """
    filters = schemas.SweetSearch(name=name, category=category, min_price=min_price, max_price=max_price)
    return catalog.search(filters)


@sweets_router.get("/{sweet_id}", response_model=schemas.Sweet)
def get_sweet(
    sweet_id: int,
    catalog: CatalogService = Depends(get_catalog),
    principal: Principal = Depends(auth.requires(Action.READ)),
):
    """Get a single sweet by ID (authenticated users only)."""
    return catalog.get(sweet_id)


@sweets_router.put("/{sweet_id}", response_model=schemas.Sweet)
def update_sweet(
    sweet_id: int,
    sweet: schemas.SweetUpdate,
    catalog: CatalogService = Depends(get_catalog),
    stock: StockTransactionManager = Depends(get_stock_manager),
    principal: Principal = Depends(auth.requires(Action.UPDATE)),
):
    """
    Update an existing sweet's metadata (admin only).

    Raises:
        NothingToUpdate: 400 if the body has no fields
        SweetNotFound: 404 if the sweet does not exist
    """
    return catalog.update(sweet_id, sweet.model_dump(exclude_unset=True), timeout=stock.lock_timeout)


@sweets_router.delete("/{sweet_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_sweet(
    sweet_id: int,
    catalog: CatalogService = Depends(get_catalog),
    stock: StockTransactionManager = Depends(get_stock_manager),
    principal: Principal = Depends(auth.requires(Action.DELETE)),
):
    """
    Delete a sweet (admin only).

    Waits behind in-flight purchases and restocks of the same sweet.

    Raises:
        SweetNotFound: 404 if the sweet does not exist
        LockTimeout: 503 if the sweet stayed locked too long
    """
    catalog.delete(sweet_id, timeout=stock.lock_timeout)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@sweets_router.post("/{sweet_id}/purchase", response_model=schemas.Sweet)
def purchase_sweet(
    sweet_id: int,
    change: schemas.StockChange,
    stock: StockTransactionManager = Depends(get_stock_manager),
    principal: Principal = Depends(auth.requires(Action.PURCHASE)),
):
    """
    Purchase units of a sweet (authenticated users).

    Raises:
        InvalidArgument: 400 if the quantity is not a positive integer
        SweetNotFound: 404 if the sweet does not exist
        InsufficientStock: 400 if not enough units are in stock
    """
    logger.info(f"User {principal.id} purchasing {change.quantity} of sweet {sweet_id}")
    return stock.purchase(sweet_id, change.quantity)


@sweets_router.post("/{sweet_id}/restock", response_model=schemas.Sweet)
def restock_sweet(
    sweet_id: int,
    change: schemas.StockChange,
    stock: StockTransactionManager = Depends(get_stock_manager),
    principal: Principal = Depends(auth.requires(Action.RESTOCK)),
):
    """
    Restock a sweet (admin only).

    Raises:
        InvalidArgument: 400 if the quantity is not a positive integer
        SweetNotFound: 404 if the sweet does not exist
    """
    logger.info(f"User {principal.id} restocking {change.quantity} of sweet {sweet_id}")
    return stock.restock(sweet_id, change.quantity)


app.include_router(auth_router)
app.include_router(sweets_router)


def run():
    """Serve the application with uvicorn on the configured host and port."""
    uvicorn.run(app, host=HOST, port=PORT)


if __name__ == "__main__":
    run()
