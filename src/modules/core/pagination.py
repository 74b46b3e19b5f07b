"""Shared DRF pagination classes."""

from __future__ import annotations

from rest_framework.pagination import PageNumberPagination


class StandardResultsSetPagination(PageNumberPagination):
    """Page-number pagination with a client-tunable, capped page size."""

    page_size = 50
    page_size_query_param = "limit"
    max_page_size = 100
