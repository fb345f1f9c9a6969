import logging

from flask import Blueprint, jsonify, request

from ..domain.models import CountKind
from ..services.async_helper import run_async
from ..services.book_service import BookService
from ..services.count_service import CountReconciliationService
from ..services.library_health import analyze_library_health
from . import get_context

logger = logging.getLogger(__name__)

maintenance_bp = Blueprint('maintenance', __name__, url_prefix='/api/users/<user_id>/maintenance')


@maintenance_bp.post('/recalculate/<kind>')
def recalculate(user_id, kind):
    """Recount bookCount for every genre or series of the user."""
    try:
        kind = CountKind(kind)
    except ValueError:
        return jsonify({'error': f'Unknown count kind: {kind}'}), 400
    report = run_async(CountReconciliationService(get_context()).recalculate_counts(user_id, kind))
    return jsonify(report.to_dict())


@maintenance_bp.post('/purge-bin')
def purge_bin(user_id):
    """Purge expired books from the bin, or the whole bin with ``{"all": true}``."""
    data = request.get_json(silent=True) or {}
    service = BookService(get_context())
    if data.get('all'):
        purged = run_async(service.empty_bin(user_id))
    else:
        purged = run_async(service.purge_expired(user_id))
    logger.info(f"Purged {purged} books from the bin for user {user_id}")
    return jsonify({'purged': purged})


@maintenance_bp.get('/health')
def library_health(user_id):
    report = run_async(analyze_library_health(get_context(), user_id))
    return jsonify(report.to_dict())
