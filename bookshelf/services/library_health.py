"""
Library health: which books are missing metadata, and an overall completeness
score. Always computed over the complete collection.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List

from ..domain.models import Book
from .book_service import BookService
from .context import ServiceContext

logger = logging.getLogger(__name__)

# Field weight in the completeness score; weight 0 is tracked but not scored.
HEALTH_FIELDS = {
    'cover_image_url': 2,
    'genres': 2,
    'page_count': 1,
    'publisher': 1,
    'published_date': 1,
    'isbn': 0,
}

# Fields a metadata lookup by ISBN can usually fill in.
API_FIXABLE_FIELDS = {'cover_image_url', 'genres', 'publisher', 'published_date'}

ISSUE_NAMES = {
    'cover_image_url': 'missing_cover',
    'genres': 'missing_genres',
    'page_count': 'missing_page_count',
    'publisher': 'missing_publisher',
    'published_date': 'missing_published_date',
    'isbn': 'missing_isbn',
}


def has_field_value(book: Book, field_name: str) -> bool:
    return bool(getattr(book, field_name, None))


def missing_fields(book: Book) -> List[str]:
    return [name for name in HEALTH_FIELDS if not has_field_value(book, name)]


def book_completeness(book: Book) -> int:
    total = sum(weight for weight in HEALTH_FIELDS.values() if weight)
    score = sum(weight for name, weight in HEALTH_FIELDS.items() if weight and has_field_value(book, name))
    return round(score / total * 100) if total else 100


def library_completeness(books: List[Book]) -> int:
    """Mean book completeness, capped at 99 while any book is incomplete."""
    if not books:
        return 100
    scores = [book_completeness(book) for book in books]
    score = round(sum(scores) / len(scores))
    if score == 100 and any(s < 100 for s in scores):
        return 99
    return score


@dataclass
class HealthReport:
    total_books: int
    completeness_score: int
    total_issues: int
    fixable_books: int
    issues: Dict[str, List[Book]] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'totalBooks': self.total_books,
            'completenessScore': self.completeness_score,
            'totalIssues': self.total_issues,
            'fixableBooks': self.fixable_books,
            'issues': {name: [b.id for b in books] for name, books in self.issues.items()},
        }


def analyze_books(books: List[Book]) -> HealthReport:
    active = [b for b in books if not b.is_deleted]
    issues: Dict[str, List[Book]] = {name: [] for name in ISSUE_NAMES.values()}
    for book in active:
        for name in missing_fields(book):
            issues[ISSUE_NAMES[name]].append(book)

    # ISBN is tracked but does not count as an issue.
    total_issues = sum(len(books) for name, books in issues.items() if name != 'missing_isbn')
    fixable = [
        b for b in active
        if b.isbn and any(name in API_FIXABLE_FIELDS for name in missing_fields(b))
    ]
    return HealthReport(
        total_books=len(active),
        completeness_score=library_completeness(active),
        total_issues=total_issues,
        fixable_books=len(fixable),
        issues=issues,
    )


async def analyze_library_health(ctx: ServiceContext, user_id: str) -> HealthReport:
    """Health report over the user's whole library (never a cached page)."""
    books = await BookService(ctx).get_all_books(user_id)
    report = analyze_books(books)
    logger.info(f"Library health for user {user_id}: {report.completeness_score}% over {report.total_books} books")
    return report
