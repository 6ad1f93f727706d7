from flask_wtf import FlaskForm
from flask_wtf.file import FileField, FileRequired, FileAllowed
from wtforms import StringField, TextAreaField
from wtforms.fields.choices import SelectField
from wtforms.fields.numeric import DecimalField
from wtforms.fields.simple import BooleanField
from wtforms.validators import DataRequired, Optional, Length, NumberRange

from ..themes.packages import ALLOWED_THUMBNAIL_EXTENSIONS, PLANS

THUMBNAIL_EXTENSIONS = sorted(ALLOWED_THUMBNAIL_EXTENSIONS)
PLAN_CHOICES = [(plan, plan.capitalize()) for plan in PLANS]


class JSONForm(FlaskForm):
    # формы приходят из AJAX-запросов, CSRF для них отключён как и у остальных JSON-ручек
    class Meta:
        csrf = False


#                Темы каталога
class ThemeUploadForm(JSONForm):
    name = StringField('Название', validators=[DataRequired(), Length(max=255)])
    description = TextAreaField('Описание', validators=[Optional()])
    category = StringField('Категория', validators=[Optional(), Length(max=100)])
    plan = SelectField('Тариф', choices=PLAN_CHOICES, default='free')
    price = DecimalField('Цена', places=2, validators=[Optional(), NumberRange(min=0)])
    version = StringField('Версия', validators=[Optional(), Length(max=50)])
    tags = StringField('Теги (через запятую)', validators=[Optional()])
    zipFile = FileField('Архив темы', validators=[FileRequired(), FileAllowed(['zip'], 'Только ZIP-архивы!')])
    thumbnail = FileField('Миниатюра', validators=[FileRequired(),
                                                    FileAllowed(THUMBNAIL_EXTENSIONS, 'Только изображения!')])


class ThemeUpdateForm(JSONForm):
    name = StringField('Название', validators=[Optional(), Length(max=255)])
    description = TextAreaField('Описание', validators=[Optional()])
    category = StringField('Категория', validators=[Optional(), Length(max=100)])
    plan = SelectField('Тариф', choices=PLAN_CHOICES, validators=[Optional()], validate_choice=False)
    price = DecimalField('Цена', places=2, validators=[Optional(), NumberRange(min=0)])
    version = StringField('Версия', validators=[Optional(), Length(max=50)])
    tags = StringField('Теги (через запятую)', validators=[Optional()])
    is_active = BooleanField('Доступна', validators=[Optional()])
    zipFile = FileField('Архив темы', validators=[Optional(), FileAllowed(['zip'], 'Только ZIP-архивы!')])
    thumbnail = FileField('Миниатюра', validators=[Optional(), FileAllowed(THUMBNAIL_EXTENSIONS, 'Только изображения!')])


#                Пользовательские темы
class CustomThemeForm(JSONForm):
    name = StringField('Название', validators=[DataRequired(), Length(max=255)])
    zipFile = FileField('Архив темы', validators=[FileRequired(), FileAllowed(['zip'], 'Только ZIP-архивы!')])
    thumbnail = FileField('Миниатюра', validators=[Optional(), FileAllowed(THUMBNAIL_EXTENSIONS, 'Только изображения!')])


class CustomThemeUpdateForm(JSONForm):
    name = StringField('Название', validators=[Optional(), Length(max=255)])
    zipFile = FileField('Архив темы', validators=[Optional(), FileAllowed(['zip'], 'Только ZIP-архивы!')])
    thumbnail = FileField('Миниатюра', validators=[Optional(), FileAllowed(THUMBNAIL_EXTENSIONS, 'Только изображения!')])
