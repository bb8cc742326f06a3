"""Adapters for the flat catalog collections: categories and companies."""
from stationsync.models.catalog import Category, Company
from stationsync.sync.policy import SyncPolicy
from stationsync.sync.reconciler import KindAdapter, KindReconciler
from stationsync.uex.client import FetchFilters, UexClient
from stationsync.uex.normalizer import normalize_category, normalize_company

CATEGORIES_ENDPOINT = "categories"
COMPANIES_ENDPOINT = "companies"

# Only item categories are mirrored; service/vehicle categories are ignored.
ITEM_CATEGORY_TYPE = "item"


def category_adapter(client: UexClient) -> KindAdapter:
    return KindAdapter(
        endpoint=CATEGORIES_ENDPOINT,
        model=Category,
        fetch=client.fetch_categories,
        normalize=normalize_category,
        base_filters=FetchFilters(type=ITEM_CATEGORY_TYPE),
        retire_scope={"type": ITEM_CATEGORY_TYPE},
    )


def company_adapter(client: UexClient) -> KindAdapter:
    # The companies listing has no date_modified filter upstream.
    return KindAdapter(
        endpoint=COMPANIES_ENDPOINT,
        model=Company,
        fetch=client.fetch_companies,
        normalize=normalize_company,
        supports_delta=False,
    )


def categories_reconciler(
    client: UexClient, policy: SyncPolicy, **kwargs
) -> KindReconciler:
    return KindReconciler(category_adapter(client), policy, **kwargs)


def companies_reconciler(
    client: UexClient, policy: SyncPolicy, **kwargs
) -> KindReconciler:
    return KindReconciler(company_adapter(client), policy, **kwargs)
