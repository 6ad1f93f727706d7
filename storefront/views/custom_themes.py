from flask import Blueprint, current_app, jsonify, request, send_file, url_for
from flask_login import current_user, login_required

from .themes import FRAMEABLE_CSP, edit_scope, file_response, request_data
from ..admin.forms import CustomThemeForm, CustomThemeUpdateForm
from ..errors import ValidationError
from ..extensions import csrf, talisman
from ..themes import custom_packages, gateway, installer, packages, resolver

custom_themes_bp = Blueprint('custom_themes', __name__, url_prefix='/custom-themes')


@custom_themes_bp.before_request
@login_required
def require_login():
    """Все пользовательские темы доступны только владельцу."""


def custom_payload(custom):
    data = custom.to_dict()
    data['thumbnailUrl'] = packages.thumbnail_url(custom)
    data['previewUrl'] = url_for('custom_themes.custom_theme_preview', theme_id=custom.id)
    return data


@custom_themes_bp.route('', methods=['GET'])
def custom_theme_list():
    themes = custom_packages.list_for_owner(current_user)
    return jsonify(ok=True, themes=[custom_payload(custom) for custom in themes])


@custom_themes_bp.route('', methods=['POST'])
@csrf.exempt
def custom_theme_create():
    form = CustomThemeForm()
    if not form.validate():
        if form.zipFile.errors:
            raise ValidationError('ZIP file is required', details=form.errors)
        raise ValidationError('Invalid theme data', details=form.errors)

    custom = custom_packages.publish(current_user, form.name.data, form.zipFile.data, form.thumbnail.data)
    current_app.logger.info('[Custom Themes] Theme %s created by user %s', custom.id, current_user.id)
    return jsonify(ok=True, message='Custom theme created successfully', theme=custom_payload(custom)), 201


@custom_themes_bp.route('/<int:theme_id>', methods=['GET'])
def custom_theme_detail(theme_id):
    custom = custom_packages.get_owned(theme_id, current_user)
    return jsonify(ok=True, theme=custom_payload(custom))


@custom_themes_bp.route('/<int:theme_id>', methods=['POST'])
@csrf.exempt
def custom_theme_update(theme_id):
    form = CustomThemeUpdateForm()
    if not form.validate():
        raise ValidationError('Invalid theme data', details=form.errors)
    custom = custom_packages.republish(
        theme_id, current_user,
        name=form.name.data if 'name' in request.form else None,
        archive=form.zipFile.data,
        thumbnail=form.thumbnail.data,
    )
    return jsonify(ok=True, message='Custom theme updated successfully', theme=custom_payload(custom))


@custom_themes_bp.route('/<int:theme_id>/delete', methods=['POST'])
@csrf.exempt
def custom_theme_delete(theme_id):
    deleted = custom_packages.remove(theme_id, current_user)
    current_app.logger.info('[Custom Themes] Theme %s deleted by user %s', theme_id, current_user.id)
    return jsonify(ok=True, message='Custom theme deleted successfully', deletedInstallations=deleted)


@custom_themes_bp.route('/<int:theme_id>/thumbnail', methods=['GET'])
def custom_theme_thumbnail(theme_id):
    custom = custom_packages.get_owned(theme_id, current_user)
    return send_file(packages.thumbnail_file(custom))


@custom_themes_bp.route('/<int:theme_id>/content', methods=['GET'])
def custom_theme_content(theme_id):
    custom = custom_packages.get_owned(theme_id, current_user)
    return jsonify(ok=True, theme=custom_payload(custom), **custom_packages.get_content(custom))


@custom_themes_bp.route('/<int:theme_id>/files', methods=['GET'])
def custom_theme_files(theme_id):
    custom = custom_packages.get_owned(theme_id, current_user)
    store_id, actor_id = edit_scope(request.args.get('storeId'))
    return jsonify(ok=True, files=gateway.list_files(custom, store_id=store_id, actor_id=actor_id))


@custom_themes_bp.route('/<int:theme_id>/file', methods=['GET'])
def custom_theme_file_read(theme_id):
    custom = custom_packages.get_owned(theme_id, current_user)
    store_id, actor_id = edit_scope(request.args.get('storeId'))
    content = gateway.read_file(custom, request.args.get('path'), store_id=store_id, actor_id=actor_id)
    return jsonify(ok=True, path=request.args.get('path'), content=content.decode('utf-8', errors='replace'))


@custom_themes_bp.route('/<int:theme_id>/file', methods=['POST'])
@csrf.exempt
def custom_theme_file_save(theme_id):
    custom = custom_packages.get_owned(theme_id, current_user)
    data = request_data()
    if data.get('content') is None:
        raise ValidationError('content is required')
    store_id, actor_id = edit_scope(data.get('storeId'))
    saved = resolver.save_edit(custom, data.get('path'), data.get('content'), store_id=store_id, actor_id=actor_id)
    return jsonify(ok=True, message='File saved successfully', savedPath=saved)


@custom_themes_bp.route('/<int:theme_id>/preview', defaults={'filename': 'index.html'}, methods=['GET'])
@custom_themes_bp.route('/<int:theme_id>/preview/<path:filename>', methods=['GET'])
@talisman(frame_options=None, content_security_policy=FRAMEABLE_CSP)
def custom_theme_preview(theme_id, filename):
    custom = custom_packages.get_owned(theme_id, current_user)
    served = gateway.serve(
        custom, filename,
        actor_id=current_user.id,
        base_url=url_for('custom_themes.custom_theme_preview', theme_id=custom.id),
        custom_preview=True,
    )
    return file_response(served, frameable=True)


@custom_themes_bp.route('/<int:theme_id>/install', methods=['POST'])
@csrf.exempt
def custom_theme_install(theme_id):
    store_id = request_data().get('storeId')
    if store_id in (None, ''):
        raise ValidationError('storeId is required')
    result = installer.install(store_id, theme_id, is_custom=True, actor=current_user)
    return jsonify(
        ok=True,
        message='Custom theme installed successfully',
        installationId=result.installation.id,
        workingCopyPath=result.working_copy_path,
        installation=result.installation.to_dict(),
    )
