from flask import Blueprint, current_app, jsonify, make_response, request, send_file, url_for
from flask_login import current_user, login_required

from ..admin.decorators import admin_required
from ..errors import NotFound, ValidationError
from ..extensions import csrf, talisman
from ..themes import gateway, installer, packages, recent, resolver
from ..themes.paths import parse_theme_key

themes_bp = Blueprint('themes', __name__)

# Превью и файлы магазина открываются в iframe редактора
FRAMEABLE_CSP = {
    'default-src': ["'self'", "'unsafe-inline'", 'data:', 'https:'],
    'img-src': ["'self'", 'data:', 'https:'],
    'frame-ancestors': '*',
}


def request_data():
    return request.get_json(silent=True) or request.form


def current_actor():
    return current_user if current_user.is_authenticated else None


def edit_scope(store_id):
    """(store_id, actor_id): копия магазина, если он указан, иначе копия пользователя."""
    if store_id not in (None, ''):
        store = installer.get_store(store_id, current_user)
        return store.id, None
    return None, current_user.id


def file_response(served, frameable=False):
    if served.body is not None:
        response = make_response(served.body)
        response.headers['Content-Type'] = f'{served.content_type}; charset=utf-8'
    else:
        response = send_file(served.path, mimetype=served.content_type)
    if frameable:
        response.headers['X-Frame-Options'] = 'ALLOWALL'
    return response


# Каталог

@themes_bp.route('/themes', methods=['GET'])
def theme_list():
    pagination = packages.search_themes(
        search=request.args.get('search', '').strip() or None,
        category=request.args.get('category') or None,
        plan=request.args.get('plan') or None,
        sort=request.args.get('sortBy', 'createdAt'),
        order=request.args.get('sortOrder', 'desc'),
        page=request.args.get('page', 1, type=int),
        per_page=request.args.get('limit', 10, type=int),
        only_active=True,
    )
    return jsonify(
        ok=True,
        themes=[packages.theme_payload(theme) for theme in pagination.items],
        pagination={'page': pagination.page, 'limit': pagination.per_page,
                    'total': pagination.total, 'pages': pagination.pages},
    )


@themes_bp.route('/themes/<int:theme_id>', methods=['GET'])
def theme_detail(theme_id):
    theme = packages.get_theme(theme_id)
    return jsonify(ok=True, theme=packages.theme_payload(theme))


@themes_bp.route('/themes/<int:theme_id>/thumbnail', methods=['GET'])
def theme_thumbnail(theme_id):
    theme = packages.get_theme(theme_id)
    return send_file(packages.thumbnail_file(theme))


@themes_bp.route('/themes/<int:theme_id>/structure', methods=['GET'])
def theme_structure(theme_id):
    theme = packages.get_theme(theme_id)
    return jsonify(ok=True, structure=packages.package_structure(theme))


@themes_bp.route('/themes/<int:theme_id>/download', methods=['GET'])
def theme_download(theme_id):
    theme = packages.get_theme(theme_id)
    buffer, filename = packages.download(theme, current_actor())
    current_app.logger.info('[Themes] Theme %s downloaded', theme.id)
    return send_file(buffer, mimetype='application/zip', as_attachment=True, download_name=filename)


@themes_bp.route('/themes/<int:theme_id>/preview', defaults={'filename': 'index.html'}, methods=['GET'])
@themes_bp.route('/themes/<int:theme_id>/preview/<path:filename>', methods=['GET'])
@talisman(frame_options=None, content_security_policy=FRAMEABLE_CSP)
def theme_preview(theme_id, filename):
    theme = packages.get_theme(theme_id)
    if not theme.is_active:
        raise NotFound('Theme not found or inactive')
    served = gateway.serve(theme, filename, base_url=url_for('themes.theme_preview', theme_id=theme.id))
    return file_response(served, frameable=True)


# Установка

@themes_bp.route('/themes/install', methods=['POST'])
@csrf.exempt
@login_required
def theme_install():
    data = request_data()
    store_id = data.get('storeId')
    theme_id = data.get('themeId')
    custom_theme_id = data.get('customThemeId')
    if store_id in (None, ''):
        raise ValidationError('storeId is required')
    if bool(theme_id) == bool(custom_theme_id):
        raise ValidationError('Exactly one of themeId or customThemeId is required')

    is_custom = bool(custom_theme_id)
    result = installer.install(store_id, custom_theme_id if is_custom else theme_id, is_custom, actor=current_user)
    return jsonify(
        ok=True,
        message='Theme installed successfully',
        installationId=result.installation.id,
        workingCopyPath=result.working_copy_path,
        installation=result.installation.to_dict(),
    )


@themes_bp.route('/themes/uninstall', methods=['POST'])
@csrf.exempt
@login_required
def theme_uninstall():
    installation_id = request_data().get('installationId')
    if installation_id in (None, ''):
        raise ValidationError('installationId is required')
    installation = installer.uninstall(installation_id, actor=current_user)
    return jsonify(ok=True, message='Theme uninstalled successfully', installationId=installation.id)


@themes_bp.route('/themes/installed/<int:store_id>', methods=['GET'])
@login_required
def theme_installed(store_id):
    store = installer.get_store(store_id, current_user)
    include_inactive = request.args.get('includeInactive', '').lower() in ('1', 'true', 'yes')
    rows = installer.list_installed(store.id, include_inactive=include_inactive)
    return jsonify(ok=True, installations=[row.to_dict() for row in rows])


@themes_bp.route('/themes/installations/<int:installation_id>', methods=['GET'])
@login_required
def theme_installation(installation_id):
    return jsonify(ok=True, installation=installer.installation_details(installation_id, actor=current_user))


@themes_bp.route('/themes/recent', methods=['GET'])
@login_required
def theme_recent():
    return jsonify(ok=True, installations=recent.list_recent())


@themes_bp.route('/themes/recent/delete', methods=['POST'])
@csrf.exempt
@admin_required
def theme_recent_delete():
    data = request.get_json(silent=True) or {}
    deleted = recent.delete_recent(data.get('ids'))
    return jsonify(ok=True, deletedCount=deleted)


# Файлы темы и правки

@themes_bp.route('/themes/<int:theme_id>/files', methods=['GET'])
@login_required
def theme_files(theme_id):
    theme = packages.get_theme(theme_id)
    store_id, actor_id = edit_scope(request.args.get('storeId'))
    return jsonify(ok=True, files=gateway.list_files(theme, store_id=store_id, actor_id=actor_id))


@themes_bp.route('/themes/<int:theme_id>/file', methods=['GET'])
@login_required
def theme_file_read(theme_id):
    theme = packages.get_theme(theme_id)
    store_id, actor_id = edit_scope(request.args.get('storeId'))
    content = gateway.read_file(theme, request.args.get('path'), store_id=store_id, actor_id=actor_id)
    return jsonify(ok=True, path=request.args.get('path'), content=content.decode('utf-8', errors='replace'))


@themes_bp.route('/themes/<int:theme_id>/file', methods=['POST'])
@csrf.exempt
@login_required
def theme_file_save(theme_id):
    theme = packages.get_theme(theme_id)
    data = request_data()
    if data.get('content') is None:
        raise ValidationError('content is required')
    store_id, actor_id = edit_scope(data.get('storeId'))
    saved = resolver.save_edit(theme, data.get('path'), data.get('content'), store_id=store_id, actor_id=actor_id)
    current_app.logger.info('[Themes] File %s of theme %s saved', data.get('path'), theme.id)
    return jsonify(ok=True, message='File saved successfully', savedPath=saved)


# Файлы установленной темы магазина

@themes_bp.route('/stores/<int:store_id>/themes/<theme_key>/', defaults={'filename': 'index.html'}, methods=['GET'])
@themes_bp.route('/stores/<int:store_id>/themes/<theme_key>/<path:filename>', methods=['GET'])
@talisman(frame_options=None, content_security_policy=FRAMEABLE_CSP)
def store_theme_file(store_id, theme_key, filename):
    package_id, is_custom = parse_theme_key(theme_key)
    package = installer.get_package(package_id, is_custom)
    base_url = url_for('themes.store_theme_file', store_id=store_id, theme_key=theme_key)
    served = gateway.serve(package, filename, store_id=store_id, base_url=base_url)
    return file_response(served, frameable=True)
