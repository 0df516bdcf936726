"""Catalog routes: cached categories, products and search."""

import logging
from typing import List

from fastapi import APIRouter, Depends, Query

from catalog_cache.api.deps import get_catalog_service
from catalog_cache.api.schemas import (
    CategorySummary,
    CategoryWithProducts,
    Envelope,
    ProductPage,
    ProductWithDetail,
)
from catalog_cache.catalog.mapper import build_pagination
from catalog_cache.catalog.service import CatalogService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/catalog", tags=["catalog"])

# Shorter queries would match most of the catalog
MIN_SEARCH_LENGTH = 2


@router.get("/categories", response_model=Envelope[List[CategorySummary]])
async def list_categories(service: CatalogService = Depends(get_catalog_service)):
    """List all categories, seeding them from the website on first use."""
    categories = await service.get_all_categories()
    return Envelope(data=categories)


@router.get("/categories/{slug}", response_model=Envelope[CategoryWithProducts])
async def get_category(
    slug: str,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    service: CatalogService = Depends(get_catalog_service),
):
    """Get a category with a page of its products."""
    return Envelope(data=await service.get_category(slug, page, limit))


@router.post("/categories/{slug}/refresh", response_model=Envelope[CategoryWithProducts])
async def refresh_category(
    slug: str,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    service: CatalogService = Depends(get_catalog_service),
):
    """Re-scrape a category now."""
    return Envelope(data=await service.refresh_category(slug, page, limit))


@router.get("/products/{slug}", response_model=Envelope[ProductWithDetail])
async def get_product(slug: str, service: CatalogService = Depends(get_catalog_service)):
    return Envelope(data=await service.get_product(slug))


@router.post("/products/{slug}/refresh", response_model=Envelope[ProductWithDetail])
async def refresh_product(slug: str, service: CatalogService = Depends(get_catalog_service)):
    """Drop the stored product detail and re-scrape it."""
    return Envelope(data=await service.refresh_product(slug))


@router.get("/search", response_model=Envelope[ProductPage])
async def search_products(
    q: str = Query(""),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    service: CatalogService = Depends(get_catalog_service),
):
    """Search cached products by title or source id."""
    query = q.strip()
    if len(query) < MIN_SEARCH_LENGTH:
        return Envelope(data=ProductPage(items=[], pagination=build_pagination(page, limit, 0)))

    return Envelope(data=await service.search_products(query, page, limit))
