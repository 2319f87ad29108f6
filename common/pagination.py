"""
Pagination utilities for the project.

Defines the page number pagination class used by list endpoints that can
grow without bound (notifications).  Conversation and message lists are
returned whole.
"""
from rest_framework.pagination import PageNumberPagination


class DefaultPagination(PageNumberPagination):
    """A simple page number paginator with a default page size."""
    page_size = 20
    page_size_query_param = "page_size"
    max_page_size = 100
