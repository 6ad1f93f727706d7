import re

from unidecode import unidecode

from ..extensions import db

class BaseModel(db.Model):
    __abstract__ = True
    id = db.Column(db.Integer, primary_key=True, autoincrement=True)

    @staticmethod
    def slugify(value):
        """
        Транслитерация в латиницу и чистка имени:
        - unidecode для кириллицы и диакритики
        - оставляем буквы, цифры, пробелы и дефисы
        - схлопываем пробелы
        """
        value = unidecode(value or '')
        value = re.sub(r'[^a-zA-Z0-9\s-]', '', value)
        value = re.sub(r'\s+', ' ', value)
        return value.strip()
