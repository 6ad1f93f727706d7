from flask import Blueprint

# Blueprint админки: загрузка и обслуживание каталога тем
admin_bp = Blueprint('admin', __name__, url_prefix='/admin')


from .theme_views import *
