from flask import Blueprint, current_app, jsonify, request

from .filters import AnalyticsFilters, FilterError
from .service import AnalyticsError

analytics_bp = Blueprint('analytics', __name__, url_prefix='/api/defect-analytics')


def _service():
    return current_app.config['ANALYTICS_SERVICE']


def _respond(view, compute):
    """Run ``compute`` with the request filters and wrap the result.

    Invalid filters map to 400 and upstream failures to 500; both use the
    ``{success: false, message}`` envelope.
    """

    try:
        filters = AnalyticsFilters.from_mapping(request.args)
        data = compute(filters)
    except FilterError as exc:
        current_app.logger.warning('Rejected %s request: %s', view, exc)
        return jsonify({'success': False, 'message': str(exc)}), 400
    except AnalyticsError as exc:
        current_app.logger.error('%s failed: %s', view, exc)
        return jsonify({'success': False, 'message': str(exc)}), 500
    return jsonify({'success': True, 'data': data})


@analytics_bp.route('/', methods=['GET'])
def defect_analytics():
    """Return the general defect analytics for the requested filters."""
    return _respond('Defect analytics', _service().get_defect_analytics)


@analytics_bp.route('/wash-recipes', methods=['GET'])
def wash_recipe_defect_analytics():
    """Return laundry defect analytics broken down by wash recipe."""
    return _respond('Wash recipe defect analytics', _service().get_wash_recipe_defect_analytics)


@analytics_bp.route('/wash-recipes/overview', methods=['GET'])
def wash_recipe_overview():
    return _respond('Wash recipe overview', _service().get_wash_recipe_overview)


@analytics_bp.route('/comparison', methods=['GET'])
def comparison_data():
    """Return comparison analytics selected by ``comparisonType``."""
    return _respond('Comparison analytics', _service().get_comparison_data)


@analytics_bp.route('/top/<category>/<int:limit>', methods=['GET'])
@analytics_bp.route('/top/<category>', methods=['GET'])
def top_defective_items(category, limit=5):
    return _respond(
        'Top defective items',
        lambda filters: _service().get_top_defective_items(category, limit, filters),
    )
