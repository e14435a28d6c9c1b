import os
from contextlib import asynccontextmanager
from typing import Any, Callable, Dict, Literal, Optional

from fastapi import Cookie, Depends, FastAPI, File, Form, Header, HTTPException, Query, Request, Response, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from loguru import logger
from pymongo.database import Database
from pymongo.errors import PyMongoError
from starlette.concurrency import run_in_threadpool

import catalog
from admin_forms import (
    BANNER_RULES,
    PRODUCT_RULES,
    banner_initial_values,
    coerce_banner_fields,
    coerce_product_fields,
    product_initial_values,
    submit_form,
)
from auth import AdminSession, AuthEvent, AuthService, admin_secret, session_ttl
from database import db, ensure_indexes, get_db
from errors import NotFoundError, StoreError, friendly_message, status_for
from events import EventChannel
from forms import FormState
from logging_setup import configure_logging
from pagination import paginate
from schemas import Banner, LoginRequest, LoginResponse, Product, Stats
from storage import BlobStorage

configure_logging()

UPLOAD_DIR = os.getenv("UPLOAD_DIR", "uploads")
PUBLIC_BASE_URL = os.getenv("PUBLIC_BASE_URL", "http://localhost:8000").rstrip("/")
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
SESSION_COOKIE = "session_token"
MIN_SEARCH_LENGTH = 2


@asynccontextmanager
async def lifespan(app: FastAPI):
    if db is not None:
        try:
            ensure_indexes(db)
        except PyMongoError as e:
            logger.warning("Could not ensure indexes: {}", friendly_message(e))
    else:
        logger.warning("DATABASE_URL / DATABASE_NAME not set; database routes will answer 503")
    yield


app = FastAPI(title="Grocery Storefront API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

os.makedirs(UPLOAD_DIR, exist_ok=True)
app.mount("/uploads", StaticFiles(directory=UPLOAD_DIR), name="uploads")

storage = BlobStorage(UPLOAD_DIR, f"{PUBLIC_BASE_URL}/uploads")

auth_events: EventChannel[AuthEvent] = EventChannel("auth")


def _log_auth_event(event: AuthEvent) -> None:
    logger.info("Admin {} {}", event.email, event.kind.replace("_", " "))


auth_events.subscribe(_log_auth_event)


# -----------------------------
# Errors
# -----------------------------

@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError):
    logger.warning("{} {} failed: {}", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(PyMongoError)
async def database_error_handler(request: Request, exc: PyMongoError):
    logger.error("{} {} database error: {!r}", request.method, request.url.path, exc)
    return JSONResponse(status_code=status_for(exc), content={"detail": friendly_message(exc)})


def invalid_form(form: FormState) -> HTTPException:
    return HTTPException(
        status_code=422,
        detail={"message": "Please fix the highlighted fields", "errors": form.errors},
    )


# -----------------------------
# Dependencies
# -----------------------------

def get_storage() -> BlobStorage:
    return storage


def get_auth_service(database: Database = Depends(get_db)) -> AuthService:
    return AuthService(database, admin_secret(), auth_events, ttl_seconds=session_ttl())


def get_current_admin(
    authorization: Optional[str] = Header(default=None),
    session_token: Optional[str] = Cookie(default=None),
    auth: AuthService = Depends(get_auth_service),
) -> AdminSession:
    token = None
    if authorization and authorization.lower().startswith("bearer "):
        token = authorization.split(" ", 1)[1]
    elif session_token:
        token = session_token
    if not token:
        raise HTTPException(status_code=401, detail="Missing token")
    session = auth.resolve(token)
    if session is None:
        raise HTTPException(status_code=401, detail="Invalid token")
    if session.role != "admin":
        raise HTTPException(status_code=403, detail="Forbidden")
    return session


# -----------------------------
# Public endpoints
# -----------------------------

@app.get("/")
def root():
    return {"message": "Grocery Storefront API"}


@app.get("/products")
def list_products(
    tag: Optional[str] = None,
    hot: Optional[bool] = None,
    q: Optional[str] = None,
    sort_by: Literal["created_at", "price"] = "created_at",
    sort_order: Literal["asc", "desc"] = "desc",
    page: int = 1,
    page_size: int = Query(12, ge=1, le=100),
    database: Database = Depends(get_db),
):
    total = catalog.count_products(database, tag=tag, hot=hot, search=q)
    info = paginate(total, page_size, page)
    items = catalog.list_products(
        database,
        tag=tag,
        hot=hot,
        search=q,
        sort_by=sort_by,
        sort_order=sort_order,
        limit=page_size,
        skip=info.offset,
    )
    return {"items": items, "pagination": info.model_dump(), "has_more": info.can_next_page}


@app.get("/products/hot")
def hot_products(limit: int = Query(8, ge=1, le=50), database: Database = Depends(get_db)):
    return catalog.list_products(database, hot=True, limit=limit)


@app.get("/products/tags")
def product_tags(database: Database = Depends(get_db)):
    return catalog.list_tags(database)


@app.get("/products/{product_id}")
def get_product(product_id: str, database: Database = Depends(get_db)):
    product = catalog.get_product(database, product_id)
    if product is None:
        raise HTTPException(status_code=404, detail="Product not found")
    return product


@app.get("/banners")
def list_banners(database: Database = Depends(get_db)):
    return catalog.list_banners(database)


@app.get("/banners/{banner_id}")
def get_banner(banner_id: str, database: Database = Depends(get_db)):
    banner = catalog.get_banner(database, banner_id)
    if banner is None:
        raise HTTPException(status_code=404, detail="Banner not found")
    return banner


@app.get("/search")
def search_products(q: str = "", limit: int = Query(20, ge=1, le=100), database: Database = Depends(get_db)):
    if len(q.strip()) < MIN_SEARCH_LENGTH:
        return []
    return catalog.list_products(database, search=q, limit=limit)


# -----------------------------
# Auth
# -----------------------------

@app.post("/auth/login", response_model=LoginResponse)
def login(req: LoginRequest, response: Response, auth: AuthService = Depends(get_auth_service)):
    session = auth.sign_in(req.email, req.password)
    response.set_cookie(
        SESSION_COOKIE,
        session.token,
        max_age=session.expires_in,
        httponly=True,
        samesite="lax",
    )
    return LoginResponse(token=session.token, expires_in=session.expires_in, email=session.email, role=session.role)


@app.post("/auth/logout")
def logout(
    response: Response,
    session: AdminSession = Depends(get_current_admin),
    auth: AuthService = Depends(get_auth_service),
):
    auth.sign_out(session)
    response.delete_cookie(SESSION_COOKIE)
    return {"success": True}


@app.get("/auth/me")
def me(session: AdminSession = Depends(get_current_admin)):
    return {"user_id": session.user_id, "email": session.email, "role": session.role, "expires_at": session.expires_at}


# -----------------------------
# Admin endpoints (CRUD)
# -----------------------------

async def with_uploaded_image(storage: BlobStorage, folder: str, image: Any, write: Callable[[str], Dict[str, Any]]) -> Dict[str, Any]:
    """
    Upload ``image`` when it is a new file, then run ``write(image_url)``.

    An existing URL is passed through untouched. If the write fails, the
    freshly uploaded object is removed again before the error propagates.
    """
    if isinstance(image, str):
        return await run_in_threadpool(write, image)
    content = await image.read()
    uploaded = await run_in_threadpool(storage.upload, folder, image.filename, content, image.content_type)
    try:
        return await run_in_threadpool(write, uploaded.url)
    except Exception:
        await run_in_threadpool(catalog.remove_image, storage, uploaded.url)
        raise


def product_from_values(values: Dict[str, Any], image_url: str) -> Product:
    return Product(
        name=values["name"].strip(),
        description=values["description"].strip(),
        price=values["price"],
        image_url=image_url,
        tags=values["tags"],
        is_hot_product=values["is_hot_product"],
        is_seasonal=values["is_seasonal"],
        seasonal_end_date=values["seasonal_end_date"] if values["is_seasonal"] else None,
    )


def banner_from_values(values: Dict[str, Any], image_url: str) -> Banner:
    return Banner(
        title=values["title"].strip(),
        description=values["description"].strip(),
        image_url=image_url,
        link=values["link"].strip(),
    )


@app.get("/admin/stats", response_model=Stats)
def admin_stats(session: AdminSession = Depends(get_current_admin), database: Database = Depends(get_db)):
    return Stats(**catalog.stats(database))


@app.post("/admin/products", status_code=201)
async def create_product(
    name: str = Form(""),
    description: str = Form(""),
    price: str = Form(""),
    tags: str = Form(""),
    is_hot_product: str = Form("false"),
    is_seasonal: str = Form("false"),
    seasonal_end_date: str = Form(""),
    image: Optional[UploadFile] = File(None),
    session: AdminSession = Depends(get_current_admin),
    database: Database = Depends(get_db),
    storage: BlobStorage = Depends(get_storage),
):
    submitted = coerce_product_fields({
        "name": name,
        "description": description,
        "price": price,
        "tags": tags,
        "is_hot_product": is_hot_product,
        "is_seasonal": is_seasonal,
        "seasonal_end_date": seasonal_end_date,
        "image": image,
    })
    created: Dict[str, Any] = {}

    async def persist(values: Dict[str, Any]) -> None:
        def write(image_url: str) -> Dict[str, Any]:
            return catalog.create_product(database, product_from_values(values, image_url))

        created.update(await with_uploaded_image(storage, "products", values["image"], write))

    form = await submit_form(product_initial_values(), PRODUCT_RULES, submitted, persist)
    if not form.is_valid:
        raise invalid_form(form)
    logger.info("{} created product {}", session.email, created["id"])
    return created


@app.put("/admin/products/{product_id}")
async def update_product(
    product_id: str,
    name: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    price: Optional[str] = Form(None),
    tags: Optional[str] = Form(None),
    is_hot_product: Optional[str] = Form(None),
    is_seasonal: Optional[str] = Form(None),
    seasonal_end_date: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    session: AdminSession = Depends(get_current_admin),
    database: Database = Depends(get_db),
    storage: BlobStorage = Depends(get_storage),
):
    existing = await run_in_threadpool(catalog.get_product, database, product_id)
    if existing is None:
        raise HTTPException(status_code=404, detail="Product not found")

    submitted = coerce_product_fields({
        "name": name,
        "description": description,
        "price": price,
        "tags": tags,
        "is_hot_product": is_hot_product,
        "is_seasonal": is_seasonal,
        "seasonal_end_date": seasonal_end_date,
        "image": image,
    })
    updated: Dict[str, Any] = {}

    async def persist(values: Dict[str, Any]) -> None:
        def write(image_url: str) -> Dict[str, Any]:
            result = catalog.update_product(database, product_id, product_from_values(values, image_url).model_dump())
            if result is None:
                raise NotFoundError("Product not found")
            return result

        updated.update(await with_uploaded_image(storage, "products", values["image"], write))

    form = await submit_form(product_initial_values(existing), PRODUCT_RULES, submitted, persist)
    if not form.is_valid:
        raise invalid_form(form)
    if updated["image_url"] != existing.get("image_url"):
        await run_in_threadpool(catalog.remove_image, storage, existing.get("image_url"))
    logger.info("{} updated product {}", session.email, product_id)
    return updated


@app.delete("/admin/products/{product_id}")
def delete_product(
    product_id: str,
    session: AdminSession = Depends(get_current_admin),
    database: Database = Depends(get_db),
    storage: BlobStorage = Depends(get_storage),
):
    if not catalog.delete_product(database, storage, product_id):
        raise HTTPException(status_code=404, detail="Product not found")
    return {"success": True}


@app.post("/admin/banners", status_code=201)
async def create_banner(
    title: str = Form(""),
    description: str = Form(""),
    link: str = Form(""),
    image: Optional[UploadFile] = File(None),
    session: AdminSession = Depends(get_current_admin),
    database: Database = Depends(get_db),
    storage: BlobStorage = Depends(get_storage),
):
    submitted = coerce_banner_fields({"title": title, "description": description, "link": link, "image": image})
    created: Dict[str, Any] = {}

    async def persist(values: Dict[str, Any]) -> None:
        def write(image_url: str) -> Dict[str, Any]:
            return catalog.create_banner(database, banner_from_values(values, image_url))

        created.update(await with_uploaded_image(storage, "banners", values["image"], write))

    form = await submit_form(banner_initial_values(), BANNER_RULES, submitted, persist)
    if not form.is_valid:
        raise invalid_form(form)
    logger.info("{} created banner {}", session.email, created["id"])
    return created


@app.put("/admin/banners/{banner_id}")
async def update_banner(
    banner_id: str,
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    link: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    session: AdminSession = Depends(get_current_admin),
    database: Database = Depends(get_db),
    storage: BlobStorage = Depends(get_storage),
):
    existing = await run_in_threadpool(catalog.get_banner, database, banner_id)
    if existing is None:
        raise HTTPException(status_code=404, detail="Banner not found")

    submitted = coerce_banner_fields({"title": title, "description": description, "link": link, "image": image})
    updated: Dict[str, Any] = {}

    async def persist(values: Dict[str, Any]) -> None:
        def write(image_url: str) -> Dict[str, Any]:
            result = catalog.update_banner(database, banner_id, banner_from_values(values, image_url).model_dump())
            if result is None:
                raise NotFoundError("Banner not found")
            return result

        updated.update(await with_uploaded_image(storage, "banners", values["image"], write))

    form = await submit_form(banner_initial_values(existing), BANNER_RULES, submitted, persist)
    if not form.is_valid:
        raise invalid_form(form)
    if updated["image_url"] != existing.get("image_url"):
        await run_in_threadpool(catalog.remove_image, storage, existing.get("image_url"))
    logger.info("{} updated banner {}", session.email, banner_id)
    return updated


@app.delete("/admin/banners/{banner_id}")
def delete_banner(
    banner_id: str,
    session: AdminSession = Depends(get_current_admin),
    database: Database = Depends(get_db),
    storage: BlobStorage = Depends(get_storage),
):
    if not catalog.delete_banner(database, storage, banner_id):
        raise HTTPException(status_code=404, detail="Banner not found")
    return {"success": True}


# Existing diagnostics
@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": None,
        "database_name": None,
        "connection_status": "Not Connected",
        "collections": []
    }
    try:
        if db is not None:
            response["database"] = "✅ Available"
            response["connection_status"] = "Connected"
            try:
                collections = db.list_collection_names()
                response["collections"] = collections[:10]
                response["database"] = "✅ Connected & Working"
            except PyMongoError as e:
                response["database"] = f"⚠️  Connected but Error: {friendly_message(e)}"
        else:
            response["database"] = "⚠️  Available but not initialized"
    except Exception as e:
        response["database"] = f"❌ Error: {str(e)[:50]}"

    response["database_url"] = "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set"
    response["database_name"] = "✅ Set" if os.getenv("DATABASE_NAME") else "❌ Not Set"
    return response


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
