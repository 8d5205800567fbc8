import logging
from contextlib import asynccontextmanager
from typing import List

from bson import ObjectId
from fastapi import APIRouter, Depends, FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

import database
from auth import (
    Identity,
    change_password,
    ensure_admin_user,
    get_identity,
    require_roles,
    sign_in,
    sign_out,
    sign_token,
    sign_up,
)
from config import get_settings
from errors import CatalogError, DuplicateKey, Internal, NotFound, ValidationFailed
from observability import setup_logging
from schemas import (
    MutationResult,
    Product,
    ProductCreate,
    ProductUpdate,
    SearchResult,
    SignInRequest,
    SignUpRequest,
    User,
    UserUpdate,
)
from search import build_search

logger = logging.getLogger(__name__)

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(settings.log_level, settings.log_format)
    database.connect()
    ensure_admin_user()
    logger.info("Catalog API started")
    yield
    database.close_database()
    logger.info("Catalog API shut down")


app = FastAPI(title="Product Catalog API", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

require_admin = require_roles("admin")


# ---------- Path checks ----------

def _checked_id(value: str, param: str) -> str:
    if not ObjectId.is_valid(value):
        raise ValidationFailed(f"Invalid value for parameter {param}")
    return value


def valid_product_id(product_id: str) -> str:
    return _checked_id(product_id, "productId")


def valid_user_id(user_id: str) -> str:
    return _checked_id(user_id, "userId")


# ---------- Products ----------

products = APIRouter()


@products.get("", response_model=SearchResult)
def search(request: Request):
    return database.search_products(build_search(request.query_params))


@products.get("/categories", response_model=List[str])
def categories():
    return database.list_categories()


@products.get("/name/{name}", response_model=Product)
def get_product_by_name(name: str, identity: Identity = Depends(get_identity)):
    product = database.find_product_by_name(name)
    if not product:
        raise NotFound("Product not found")
    return product


@products.get("/{product_id}", response_model=Product)
def get_product(product_id: str = Depends(valid_product_id), identity: Identity = Depends(get_identity)):
    product = database.find_product_by_id(product_id)
    if not product:
        raise NotFound("Product not found")
    return product


@products.post("", response_model=MutationResult)
def create_product(payload: ProductCreate, identity: Identity = Depends(require_admin)):
    created = database.insert_product(payload)
    logger.info("Product created", extra={"product_id": created["id"], "user_id": identity.user_id})
    return {"message": "Created", "productId": created["id"]}


@products.patch("/{product_id}", response_model=MutationResult)
def update_product(
    payload: ProductUpdate,
    identity: Identity = Depends(require_admin),
    product_id: str = Depends(valid_product_id),
):
    updated = database.update_product(product_id, payload.model_dump(exclude_none=True))
    if not updated:
        raise NotFound("Product not found")
    logger.info("Product updated", extra={"product_id": product_id, "user_id": identity.user_id})
    return {"message": "Updated", "productId": product_id}


@products.delete("/{product_id}", response_model=MutationResult)
def delete_product(identity: Identity = Depends(require_admin), product_id: str = Depends(valid_product_id)):
    if not database.delete_product(product_id):
        raise NotFound("Product not found")
    logger.info("Product deleted", extra={"product_id": product_id, "user_id": identity.user_id})
    return {"message": "Deleted", "productId": product_id}


# ---------- Auth ----------

auth_routes = APIRouter()


@auth_routes.post("/sign-up/email")
def register(payload: SignUpRequest):
    user = sign_up(payload.fullName, payload.email, payload.password)
    return {"message": "User registered", "user": User(**user)}


@auth_routes.post("/sign-in/email")
def login(payload: SignInRequest, response: Response):
    token, user = sign_in(payload.email, payload.password)
    response.set_cookie(
        settings.session_cookie_names[0],
        sign_token(token),
        max_age=settings.session_ttl_days * 24 * 60 * 60,
        httponly=True,
        samesite="lax",
    )
    return {"message": "Signed in", "token": token, "user": User(**user)}


@auth_routes.post("/sign-out")
def logout(response: Response, identity: Identity = Depends(get_identity)):
    sign_out(identity.token)
    for name in settings.session_cookie_names:
        response.delete_cookie(name)
    logger.info("User signed out", extra={"user_id": identity.user_id})
    return {"message": "Signed out"}


# ---------- Current user ----------

me = APIRouter()


@me.get("/me", response_model=User)
def read_me(identity: Identity = Depends(get_identity)):
    return identity.user


@me.patch("/me", response_model=User)
def update_me(payload: UserUpdate, identity: Identity = Depends(get_identity)):
    updates = payload.model_dump(exclude_none=True)
    password = updates.pop("password", None)

    if "email" in updates:
        existing = database.find_user_by_email(updates["email"])
        if existing and existing["id"] != identity.user_id:
            raise DuplicateKey("Email already in use")

    if password:
        change_password(identity.user_id, password)

    user = identity.user
    if updates:
        user = database.update_user_by_id(identity.user_id, updates)
    if not user:
        raise NotFound("User not found")
    return user


# ---------- Users (admin) ----------

users = APIRouter()


@users.get("", response_model=List[User])
def list_users(identity: Identity = Depends(require_admin)):
    return database.find_all_users()


@users.get("/{user_id}", response_model=User)
def get_user(identity: Identity = Depends(require_admin), user_id: str = Depends(valid_user_id)):
    user = database.find_user_by_id(user_id)
    if not user:
        raise NotFound("User not found")
    return user


prefix = settings.api_prefix.rstrip("/")
app.include_router(auth_routes, prefix=f"{prefix}/auth", tags=["auth"])
app.include_router(products, prefix=f"{prefix}/products", tags=["products"])
app.include_router(products, prefix=f"{prefix}/product", tags=["products"], include_in_schema=False)
app.include_router(me, prefix=f"{prefix}/user", tags=["user"])
app.include_router(users, prefix=f"{prefix}/users", tags=["users"])


@app.get("/")
def read_root():
    return {"message": "Product Catalog API"}


@app.get("/health")
def health():
    response = {
        "backend": "Running",
        "database": "Not Available",
        "collections": [],
    }
    try:
        db = database.get_db()
        response["collections"] = sorted(db.list_collection_names())
        response["database"] = "Connected"
    except Exception as e:
        logger.warning("Health check could not reach the database: %s", e)
        response["database"] = f"Error: {str(e)[:50]}"
    return response


# ---------- Error handlers ----------

@app.exception_handler(CatalogError)
async def catalog_error_handler(request: Request, exc: CatalogError):
    log = logger.error if exc.status_code >= 500 else logger.info
    log(
        exc.message,
        extra={"error_code": exc.code, "path": request.url.path, "status_code": exc.status_code},
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_response())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    logger.info(f"Validation error on {request.url.path}: {exc.errors()}")
    error = ValidationFailed(errors=[
        {
            "message": e["msg"],
            "path": [str(loc) for loc in e["loc"]],
            "type": e["type"],
        }
        for e in exc.errors()
    ])
    return JSONResponse(status_code=error.status_code, content=error.to_response())


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    message = "Not Found" if exc.status_code == 404 else str(exc.detail)
    return JSONResponse(status_code=exc.status_code, content={"message": message}, headers=exc.headers)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=True)
    error = Internal()
    return JSONResponse(status_code=error.status_code, content=error.to_response())


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=settings.port)
