import datetime as dt
import logging

from flask import Blueprint, Response, jsonify, request

from auth import admin_required, check_admin_credentials, issue_admin_token
from reports import dashboard_summary, export_votes_csv, filter_charges
from schemas import ChargeFilter

logger = logging.getLogger(__name__)

admin = Blueprint('admin', __name__, url_prefix='/api/admin')

MAX_PER_PAGE = 100


@admin.route('/login', methods=['POST'])
def login():
    data = request.get_json(silent=True) or {}
    username = data.get('username')
    password = data.get('password')
    if not isinstance(username, str) or not isinstance(password, str):
        logger.warning("Admin login attempt with missing or invalid username/password data types.")
        return jsonify({'message': 'Username and password are required.'}), 400

    if not check_admin_credentials(username, password):
        logger.info(f"Admin login failed for username '{username}': Invalid credentials.")
        return jsonify({'message': 'Invalid credentials'}), 401

    logger.info(f"Admin '{username}' logged in successfully.")
    return jsonify({'token': issue_admin_token(username)}), 200


@admin.route('/charges', methods=['GET'])
@admin_required
def list_charges(**kwargs):
    """
    Lists vote and ticket charges, newest first.
    Query parameters: kind, status, nominee_id, ticket_type_id, category_id,
    needs_review, date_from, date_to (YYYY-MM-DD), page, per_page
    """
    charge_filter = ChargeFilter.from_args(request.args)
    page = max(request.args.get('page', 1, type=int), 1)
    per_page = min(max(request.args.get('per_page', 20, type=int), 1), MAX_PER_PAGE)

    query = filter_charges(charge_filter)
    total = query.count()
    charges = query.offset((page - 1) * per_page).limit(per_page).all()

    logger.info(f"Admin '{kwargs.get('current_admin')}' listed charges (page {page}, {total} total).")
    return jsonify({
        'charges': [charge.to_dict() for charge in charges],
        'page': page,
        'per_page': per_page,
        'total': total,
        'total_pages': (total + per_page - 1) // per_page,
    }), 200


@admin.route('/votes/export', methods=['GET'])
@admin_required
def export_votes(**kwargs):
    csv_content = export_votes_csv(filter_charges(ChargeFilter.from_args(request.args)))
    filename = f"votes_export_{dt.date.today().isoformat()}.csv"
    return Response(
        csv_content,
        mimetype='text/csv',
        headers={'Content-Disposition': f'attachment; filename="{filename}"'},
    )


@admin.route('/dashboard', methods=['GET'])
@admin_required
def dashboard(**kwargs):
    logger.info(f"Admin '{kwargs.get('current_admin')}' opened the dashboard.")
    return jsonify(dashboard_summary()), 200
