"""
Routes package initialization.
Registers the JSON API blueprints and maps domain errors to responses.
"""

import logging

from flask import current_app, jsonify

from ..domain.errors import (
    DuplicateBookError,
    DuplicateWishlistItemError,
    FormValidationError,
    MergeError,
    NotFoundError,
    ReadingHistoryError,
    StoreError,
    UniquenessError,
)

logger = logging.getLogger(__name__)


def get_context():
    """The ServiceContext created by create_app."""
    return current_app.extensions['bookshelf']


def _uniqueness_error(e):
    return jsonify({'error': e.message, 'field': e.field, 'conflictingId': e.conflicting_id}), 409


def _validation_error(e):
    return jsonify({'error': e.message, 'errors': e.errors}), 400


def _duplicate_book(e):
    return jsonify({'error': e.message, 'duplicate': e.result.to_dict()}), 409


def _duplicate_wishlist_item(e):
    return jsonify({'error': e.message, 'source': e.source}), 409


def _not_found(e):
    return jsonify({'error': e.message}), 404


def _bad_request(e):
    return jsonify({'error': e.message}), 400


def _store_error(e):
    logger.error(f"Store error while handling request: {e}")
    return jsonify({'error': 'The library is temporarily unavailable. Please try again.', 'retryable': True}), 503


def register_blueprints(app):
    from .books import books_bp
    from .genres import genres_bp
    from .maintenance import maintenance_bp

    app.register_blueprint(books_bp)
    app.register_blueprint(genres_bp)
    app.register_blueprint(maintenance_bp)

    app.register_error_handler(UniquenessError, _uniqueness_error)
    app.register_error_handler(FormValidationError, _validation_error)
    app.register_error_handler(DuplicateBookError, _duplicate_book)
    app.register_error_handler(DuplicateWishlistItemError, _duplicate_wishlist_item)
    app.register_error_handler(NotFoundError, _not_found)
    app.register_error_handler(MergeError, _bad_request)
    app.register_error_handler(ReadingHistoryError, _bad_request)
    app.register_error_handler(StoreError, _store_error)
