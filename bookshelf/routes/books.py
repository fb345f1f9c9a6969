from flask import Blueprint, jsonify, request

from ..domain.errors import StoreError
from ..services.async_helper import run_async
from ..services.book_service import BookService
from ..services.duplicate_service import DuplicateOverride
from . import get_context

books_bp = Blueprint('books', __name__, url_prefix='/api/users/<user_id>/books')


def _flag(name):
    return request.args.get(name, '').lower() in ('1', 'true', 'yes')


@books_bp.get('')
def list_books(user_id):
    """Active books, newest first. ``?refresh=1`` bypasses the local cache."""
    limit = request.args.get('limit', type=int)
    listing = run_async(BookService(get_context()).get_books(user_id, force_refresh=_flag('refresh'), limit=limit))
    status = 503 if listing.error else 200
    return jsonify(listing.to_dict()), status


@books_bp.post('')
def add_book(user_id):
    """Add a book. ``allowDuplicate`` skips the duplicate check for this title and author."""
    data = request.get_json(silent=True) or {}
    override = None
    if data.pop('allowDuplicate', False):
        override = DuplicateOverride.grant(data.get('title') or '', data.get('author') or '')
    book = run_async(BookService(get_context()).add_book_from_form(user_id, data, override=override))
    return jsonify(book.to_dict()), 201


@books_bp.post('/duplicate-check')
def duplicate_check(user_id):
    data = request.get_json(silent=True) or {}
    service = BookService(get_context())
    result = run_async(service.duplicates.check_duplicate_book(
        user_id, data.get('isbn'), data.get('title') or '', data.get('author') or '',
    ))
    return jsonify(result.to_dict())


@books_bp.get('/search')
def search_books(user_id):
    query = request.args.get('q', '')
    try:
        books = run_async(BookService(get_context()).search_books(user_id, query))
    except StoreError as e:
        return jsonify({'error': e.message, 'records': []}), 503
    return jsonify({'records': [b.to_dict() for b in books]})


@books_bp.get('/authors')
def list_authors(user_id):
    return jsonify(run_async(BookService(get_context()).group_authors(user_id)))
