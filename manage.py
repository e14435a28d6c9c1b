"""Maintenance commands: admin accounts, sample data and indexes."""
from datetime import timedelta

import typer
from loguru import logger
from pymongo.errors import DuplicateKeyError, PyMongoError

import catalog
from auth import AuthService, admin_secret, session_ttl
from database import ensure_indexes, get_db, now_utc
from errors import StoreError, friendly_message
from events import EventChannel
from logging_setup import configure_logging
from schemas import Banner, Product

app = typer.Typer(help="Grocery storefront maintenance commands", no_args_is_help=True)

SAMPLE_PRODUCTS = [
    Product(
        name="Basmati Rice",
        description="Premium long-grain basmati rice from India",
        price=19.99,
        image_url="https://example.com/basmati-rice.jpg",
        tags=["Rice", "Indian", "Essential"],
        is_hot_product=True,
    ),
    Product(
        name="Red Lentils (Masoor Dal)",
        description="High-quality red lentils perfect for dal and soups",
        price=5.99,
        image_url="https://example.com/red-lentils.jpg",
        tags=["Lentils", "Indian", "Bangladeshi", "Essential"],
    ),
    Product(
        name="Mango Pickle",
        description="Spicy and tangy mango pickle made with traditional recipe",
        price=4.99,
        image_url="https://example.com/mango-pickle.jpg",
        tags=["Pickle", "Indian", "Condiments"],
        is_hot_product=True,
    ),
    Product(
        name="Hilsa Fish",
        description="Fresh hilsa, the king of Bengali fish, available during the monsoon",
        price=24.99,
        image_url="https://example.com/hilsa.jpg",
        tags=["Fish", "Bangladeshi", "Seasonal"],
        is_seasonal=True,
        seasonal_end_date=now_utc() + timedelta(days=60),
    ),
]

SAMPLE_BANNERS = [
    Banner(
        title="Diwali Special Sale",
        description="Get up to 20% off on all Indian sweets and snacks",
        image_url="https://example.com/diwali-sale.jpg",
        link="/products/sweets",
    ),
    Banner(
        title="Fresh Vegetables",
        description="Fresh Bengali vegetables available every weekend",
        image_url="https://example.com/fresh-vegetables.jpg",
        link="/products/vegetables",
    ),
]


def _fail(error: Exception) -> None:
    logger.error(friendly_message(error))
    raise typer.Exit(code=1)


@app.callback()
def main(log_level: str = typer.Option("INFO", "--log-level", help="Logging level")):
    configure_logging(log_level)


@app.command("create-admin")
def create_admin(
    email: str = typer.Option(..., prompt=True),
    name: str = typer.Option("Store Admin", prompt=True),
    password: str = typer.Option(..., prompt=True, hide_input=True, confirmation_prompt=True),
):
    """Create an admin account that can sign in to the dashboard."""
    try:
        database = get_db()
        ensure_indexes(database)
        service = AuthService(database, admin_secret(), EventChannel("auth"), ttl_seconds=session_ttl())
        user_id = service.create_admin(email, name, password)
    except DuplicateKeyError:
        logger.error("An admin with email {} already exists", email)
        raise typer.Exit(code=1)
    except (StoreError, PyMongoError) as e:
        _fail(e)
    typer.echo(f"Admin created: {email} ({user_id})")


@app.command()
def seed():
    """Insert sample products and banners."""
    try:
        database = get_db()
        for product in SAMPLE_PRODUCTS:
            catalog.create_product(database, product)
        for banner in SAMPLE_BANNERS:
            catalog.create_banner(database, banner)
    except (StoreError, PyMongoError) as e:
        _fail(e)
    typer.echo(f"Seeded {len(SAMPLE_PRODUCTS)} products and {len(SAMPLE_BANNERS)} banners")


@app.command("init-indexes")
def init_indexes():
    """Create the indexes the storefront queries rely on."""
    try:
        ensure_indexes(get_db())
    except (StoreError, PyMongoError) as e:
        _fail(e)
    typer.echo("Indexes created")


if __name__ == "__main__":
    app()
