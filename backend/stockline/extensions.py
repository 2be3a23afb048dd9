# backend/stockline/extensions.py
# Shared by the models, the record store and the migration environment.

from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
migrate = Migrate()
