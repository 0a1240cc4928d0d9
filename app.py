import logging

from flask import Flask

from config import Config
from extensions import db, migrate


def create_app(overrides=None):
    """Build the Flask app that hosts the fee engine.

    ``overrides`` is applied on top of ``Config`` (tests point the database
    at SQLite this way).
    """
    app = Flask(__name__)

    # Load configuration from Config (falls back to sensible defaults inside Config)
    app.config.from_object(Config)
    if overrides:
        app.config.update(overrides)

    level = logging.getLevelName(str(app.config.get("LOG_LEVEL") or "INFO").upper())
    if not isinstance(level, int):
        level = logging.INFO
    app.logger.setLevel(level)

    # Initialize database + migrations
    db.init_app(app)
    migrate.init_app(app, db)

    with app.app_context():
        import models  # noqa: F401 - registers the tables on db.metadata

    app.logger.debug("Fee engine configured against %s", app.config["SQLALCHEMY_DATABASE_URI"])
    return app


if __name__ == "__main__":
    app = create_app()
    with app.app_context():
        db.create_all()
        app.logger.info("Database tables ensured for %s", app.config.get("SCHOOL_NAME"))
