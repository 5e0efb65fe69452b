# Overview: Flask extension instances for database, migrations and reference data caching.

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

from .services.reference_cache import ReferenceDataCache

db = SQLAlchemy()
migrate = Migrate()
reference_cache = ReferenceDataCache()
