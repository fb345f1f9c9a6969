from flask import Blueprint, jsonify, request

from ..domain.errors import FormValidationError
from ..services.async_helper import run_async
from ..services.genre_service import GenreService
from . import get_context

genres_bp = Blueprint('genres', __name__, url_prefix='/api/users/<user_id>/genres')


@genres_bp.get('')
def list_genres(user_id):
    refresh = request.args.get('refresh', '').lower() in ('1', 'true', 'yes')
    listing = run_async(GenreService(get_context()).list_genres(user_id, force_refresh=refresh))
    status = 503 if listing.error else 200
    return jsonify(listing.to_dict()), status


@genres_bp.post('')
def create_genre(user_id):
    data = request.get_json(silent=True) or {}
    name = data.get('name')
    if not name or not str(name).strip():
        raise FormValidationError({'name': 'Genre name is required'})
    genre = run_async(GenreService(get_context()).create_genre(user_id, name, data.get('color')))
    return jsonify(genre.to_dict()), 201


@genres_bp.patch('/<genre_id>')
def update_genre(user_id, genre_id):
    data = request.get_json(silent=True) or {}
    patch = {key: data[key] for key in ('name', 'color') if key in data}
    genre = run_async(GenreService(get_context()).update_genre(user_id, genre_id, patch))
    return jsonify(genre.to_dict())


@genres_bp.delete('/<genre_id>')
def delete_genre(user_id, genre_id):
    """Delete a genre and remove it from every book that references it."""
    books_updated = run_async(GenreService(get_context()).delete_genre(user_id, genre_id))
    return jsonify({'success': True, 'booksUpdated': books_updated})


@genres_bp.post('/<genre_id>/merge')
def merge_genre(user_id, genre_id):
    data = request.get_json(silent=True) or {}
    target_id = data.get('targetId')
    if not target_id:
        raise FormValidationError({'targetId': 'Target genre is required'})
    result = run_async(GenreService(get_context()).merge_genres(user_id, genre_id, target_id))
    return jsonify({'success': True, 'booksUpdated': result.books_updated})
