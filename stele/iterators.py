"""Paginated listing pages for Stele.

A content item whose slug contains an iterator token, e.g.
``blog/page/{{post.pagination}}``, is expanded into one item per page of the
iterator's query results. Each page copy has the page number substituted into
its slug and id and carries an :class:`~stele.content.IteratorInfo`.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable
from dataclasses import replace

from .content import Content, IteratorInfo
from .pipeline import Pipeline
from .query import Query, run
from .utils import permalink

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 10


class IteratorResolver:
    """Expands iterator pages.

    Attributes:
        base_url: Site base URL, used for page links.
    """

    def __init__(self, base_url: str):
        self.base_url = base_url

    def resolve(self, contents: Iterable[Content], pipeline: Pipeline, now: float) -> list[Content]:
        """Replace iterator pages with one item per page.

        Args:
            contents: Pipeline content snapshot.
            pipeline: Pipeline declaring the iterators.
            now: Current time as epoch seconds.

        Returns:
            New list in which every iterator page is replaced in place by its
            page copies. Other contents are kept as they are.
        """
        snapshot = list(contents)
        result: list[Content] = []
        for content in snapshot:
            iterator_id = self.find_iterator(content, pipeline)
            if iterator_id is None:
                result.append(content)
                continue
            result.extend(
                self.expand(content, iterator_id, pipeline.iterators[iterator_id], snapshot, now)
            )
        return result

    @staticmethod
    def find_iterator(content: Content, pipeline: Pipeline) -> str | None:
        for iterator_id in pipeline.iterators:
            if f"{{{{{iterator_id}}}}}" in content.slug:
                return iterator_id
        return None

    def expand(
        self,
        content: Content,
        iterator_id: str,
        query: Query,
        contents: list[Content],
        now: float,
    ) -> list[Content]:
        """Build the page copies of one iterator page."""
        token = f"{{{{{iterator_id}}}}}"
        limit = query.limit if query.limit and query.limit > 0 else DEFAULT_LIMIT
        items = run(contents, replace(query, limit=None), now)
        total = max(1, math.ceil(len(items) / limit))
        logger.debug(
            "Iterator `%s` on %s: %d items, %d pages", iterator_id, content.slug, len(items), total
        )

        slugs = [content.slug.replace(token, str(n)) for n in range(1, total + 1)]
        pages = []
        for number in range(1, total + 1):
            links = tuple(
                {
                    "number": n,
                    "permalink": permalink(slugs[n - 1], self.base_url),
                    "isCurrent": n == number,
                }
                for n in range(1, total + 1)
            )
            info = IteratorInfo(
                current=number,
                limit=limit,
                total=total,
                items=tuple(items[(number - 1) * limit : number * limit]),
                links=links,
                scope=query.scope,
            )
            pages.append(
                replace(
                    content,
                    id=content.id.replace(token, str(number)),
                    slug=slugs[number - 1],
                    iterator_info=info,
                )
            )
        return pages
