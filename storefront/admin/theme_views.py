from flask import current_app, jsonify, request
from flask_login import current_user

from . import admin_bp
from .decorators import admin_required
from .forms import ThemeUpdateForm, ThemeUploadForm
from ..errors import ValidationError
from ..extensions import csrf
from ..themes import packages


def _form_error(form, message):
    raise ValidationError(message, details=form.errors)


@admin_bp.route('/themes', methods=['GET'])
@admin_required
def admin_themes():
    """Каталог тем с поиском, фильтрами и пагинацией."""
    pagination = packages.search_themes(
        search=request.args.get('search', '').strip() or None,
        category=request.args.get('category') or None,
        plan=request.args.get('plan') or None,
        sort=request.args.get('sortBy', 'createdAt'),
        order=request.args.get('sortOrder', 'desc'),
        page=request.args.get('page', 1, type=int),
        per_page=request.args.get('limit', 10, type=int),
    )
    return jsonify(
        ok=True,
        themes=[packages.theme_payload(theme) for theme in pagination.items],
        pagination={
            'page': pagination.page,
            'limit': pagination.per_page,
            'total': pagination.total,
            'pages': pagination.pages,
        },
    )


@admin_bp.route('/themes', methods=['POST'])
@csrf.exempt
@admin_required
def admin_themes_create():
    form = ThemeUploadForm()
    if not form.validate():
        if form.zipFile.errors or form.thumbnail.errors:
            _form_error(form, 'Both ZIP file and thumbnail are required')
        _form_error(form, 'Invalid theme data')

    theme = packages.publish(
        name=form.name.data,
        archive=form.zipFile.data,
        thumbnail=form.thumbnail.data,
        description=form.description.data or None,
        category=form.category.data or None,
        plan=form.plan.data or 'free',
        price=form.price.data,
        version=form.version.data or None,
        tags=form.tags.data,
        uploaded_by=current_user,
    )
    current_app.logger.info('[Themes] Theme %s (%s) uploaded by user %s', theme.id, theme.name, current_user.id)
    return jsonify(ok=True, message='Theme uploaded successfully', theme=packages.theme_payload(theme)), 201


@admin_bp.route('/themes/<int:theme_id>', methods=['POST'])
@csrf.exempt
@admin_required
def admin_themes_update(theme_id):
    """Метаданные, новый архив и/или новая миниатюра."""
    form = ThemeUpdateForm()
    if not form.validate():
        _form_error(form, 'Invalid theme data')

    fields = {
        'name': form.name.data if 'name' in request.form else None,
        'description': form.description.data if 'description' in request.form else None,
        'category': form.category.data if 'category' in request.form else None,
        'plan': form.plan.data if request.form.get('plan') else None,
        'price': form.price.data,
        'version': form.version.data or None,
        'tags': form.tags.data if 'tags' in request.form else None,
        'is_active': form.is_active.data if 'is_active' in request.form else None,
    }
    theme = packages.republish(theme_id, archive=form.zipFile.data, thumbnail=form.thumbnail.data, **fields)
    current_app.logger.info('[Themes] Theme %s updated by user %s', theme.id, current_user.id)
    return jsonify(ok=True, message='Theme updated successfully', theme=packages.theme_payload(theme))


@admin_bp.route('/themes/<int:theme_id>/delete', methods=['POST'])
@csrf.exempt
@admin_required
def admin_themes_delete(theme_id):
    deleted = packages.remove(theme_id)
    current_app.logger.info('[Themes] Theme %s deleted with %s installation(s)', theme_id, deleted)
    return jsonify(ok=True, message='Theme deleted successfully', deletedInstallations=deleted)
