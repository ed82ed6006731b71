"""Query builder for the image list and structured search endpoints.

Both endpoints share one code path:
- resolve the request into filter clauses (privacy first)
- count the matching rows
- fetch one ordered page, hydrated with owner and tag details
"""

import logging
from typing import Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Query, Session

from galleria.exceptions import UpstreamError
from galleria.metadata import Image
from galleria.permissions import Principal
from galleria.search.filters import (
    DEFAULT_SORT_FIELD,
    SORT_FIELDS,
    EmptyResult,
    SearchQuery,
    build_clauses,
    compile_clauses,
)
from galleria.search.hydration import image_load_options, serialize_image
from galleria.search.results import Pagination, SearchResult

logger = logging.getLogger(__name__)


class FilterQueryBuilder:
    """Turns a SearchQuery into one page of visible, hydrated images."""

    def __init__(self, db: Session, principal: Optional[Principal] = None):
        self.db = db
        self.principal = principal

    def build_order_clauses(self, sort_by: str, sort_order: str) -> Tuple:
        """Primary sort column plus id in the same direction as a tie-breaker."""
        column = SORT_FIELDS.get(sort_by, SORT_FIELDS[DEFAULT_SORT_FIELD])
        if sort_order == "asc":
            return (column.asc(), Image.id.asc())
        return (column.desc(), Image.id.desc())

    def base_query(self, clauses) -> Query:
        return self.db.query(Image).filter(*compile_clauses(clauses))

    def search(self, query: SearchQuery) -> SearchResult:
        filters = query.filters_echo()
        try:
            clauses = build_clauses(self.db, query, self.principal)
            if isinstance(clauses, EmptyResult):
                return SearchResult.empty(query.page, query.limit, filters)

            base = self.base_query(clauses)
            total = base.order_by(None).count()
            pagination = Pagination(page=query.page, limit=query.limit, total=total)
            if total == 0 or pagination.offset >= total:
                return SearchResult(items=[], pagination=pagination, filters=filters)

            rows = (
                base.options(*image_load_options())
                .order_by(*self.build_order_clauses(query.sort_by, query.sort_order))
                .offset(pagination.offset)
                .limit(pagination.limit)
                .all()
            )
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise UpstreamError("Failed to query images.") from exc

        logger.debug(
            "Search matched %s images (page=%s limit=%s sort=%s %s)",
            total, query.page, query.limit, query.sort_by, query.sort_order,
        )
        return SearchResult(
            items=[serialize_image(row) for row in rows],
            pagination=pagination,
            filters=filters,
        )
