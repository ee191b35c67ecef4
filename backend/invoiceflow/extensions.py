# Overview: Flask extension instances for database and migrations.

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

# Services hand documents back to callers after commit; keep loaded state.
db = SQLAlchemy(session_options={"expire_on_commit": False})
migrate = Migrate()
