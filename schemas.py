"""
Database Schemas for the Grocery Storefront

Each Pydantic model represents a MongoDB collection. The collection name is the
lowercase of the class name (e.g., Product -> "product").
"""
from datetime import datetime
from pydantic import BaseModel, Field, field_validator
from typing import Optional, List

INTERNAL_LINK_PATTERN = r"^/[\w\-/]*$"
MAX_BANNERS = 5

# ----------------------------- Auth & Session -----------------------------
class AdminUser(BaseModel):
    email: str = Field(..., description="Admin email (unique)")
    name: str = Field(..., description="Admin name")
    password_hash: str = Field(..., description="PBKDF2-SHA256 password hash")
    role: str = Field("admin", description="User role")
    is_active: bool = Field(True, description="Whether the admin is active")

class Session(BaseModel):
    user_id: str = Field(..., description="Admin user id")
    token: str = Field(..., description="Session token")
    expires_at: int = Field(..., description="Unix timestamp expiry")

# -------------------------------- Catalog ---------------------------------
class Product(BaseModel):
    name: str = Field(..., min_length=1, description="Product name")
    description: str = Field(..., description="Product description")
    price: float = Field(..., ge=0, allow_inf_nan=False, description="Price")
    image_url: str = Field(..., description="Public image URL")
    tags: List[str] = Field(default_factory=list, description="Tag set")
    is_hot_product: bool = Field(False, description="Featured on the home page")
    is_seasonal: bool = Field(False, description="Seasonal product")
    seasonal_end_date: Optional[datetime] = Field(None, description="End of the season")

    @field_validator("tags")
    @classmethod
    def dedupe_tags(cls, tags: List[str]) -> List[str]:
        seen: List[str] = []
        for tag in tags:
            tag = tag.strip()
            if tag and tag not in seen:
                seen.append(tag)
        return seen

class Banner(BaseModel):
    title: str = Field(..., min_length=1, description="Banner title")
    description: str = Field(..., description="Banner description")
    image_url: str = Field(..., description="Public image URL")
    link: str = Field(..., pattern=INTERNAL_LINK_PATTERN, description="Internal navigation path")

# ------------------------------- Responses --------------------------------
class LoginRequest(BaseModel):
    email: str
    password: str

class LoginResponse(BaseModel):
    token: str
    expires_in: int
    email: str
    role: str

class Stats(BaseModel):
    total_products: int
    total_banners: int
    hot_products: int
    max_banners: int = MAX_BANNERS
