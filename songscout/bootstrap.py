from dataclasses import dataclass
from typing import Optional

import requests

from songscout.application.catalog_service import CatalogService
from songscout.application.recommendation import create_strategy
from songscout.crosscutting.config import Settings
from songscout.crosscutting.logging import secret_masker
from songscout.crosscutting.metrics import MetricsCollector
from songscout.infrastructure.catalog import CatalogClient
from songscout.infrastructure.credentials import CredentialCache


@dataclass
class ServiceContainer:
    """Process-wide object graph: one credential cache shared by every request."""

    settings: Settings
    metrics: MetricsCollector
    credentials: CredentialCache
    catalog: CatalogClient
    service: CatalogService


def build_container(settings: Settings,
                    session: Optional[requests.Session] = None,
                    metrics: Optional[MetricsCollector] = None) -> ServiceContainer:
    """Wire credentials, catalog client and orchestrators from settings."""
    session = session or requests.Session()
    metrics = metrics or MetricsCollector()
    secret_masker.add_literal(settings.client_secret)

    credentials = CredentialCache(
        settings.client_id,
        settings.client_secret,
        session=session,
        timeout=settings.upstream_timeout,
        metrics=metrics,
    )
    catalog = CatalogClient(
        credentials,
        session=session,
        timeout=settings.upstream_timeout,
        metrics=metrics,
    )
    recommender = create_strategy(settings.recommend_strategy, catalog, market=settings.market)
    service = CatalogService(catalog, recommender, market=settings.market, metrics=metrics)

    return ServiceContainer(
        settings=settings,
        metrics=metrics,
        credentials=credentials,
        catalog=catalog,
        service=service,
    )
