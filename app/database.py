"""Database configuration and initialization."""
from sqlalchemy import BigInteger, Integer, JSON, create_engine, event
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import scoped_session, sessionmaker, declarative_base

# Create SQLAlchemy base
Base = declarative_base()

# Session factory used by the Flask app (CLI commands); services receive
# their session explicitly
engine = None
db_session = None


def build_engine(database_uri: str, echo: bool = False, **kwargs):
    """
    Create an engine for the given URI.

    Server databases get a connection pool with health checks. SQLite gets
    pysqlite's implicit transaction handling replaced by an explicit
    BEGIN IMMEDIATE, so write transactions are serialized and SAVEPOINTs
    behave as on PostgreSQL.
    """
    if database_uri.startswith('sqlite'):
        engine = create_engine(database_uri, echo=echo, **kwargs)

        @event.listens_for(engine, 'connect')
        def _disable_pysqlite_begin(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None

        @event.listens_for(engine, 'begin')
        def _begin_immediate(conn):
            conn.exec_driver_sql('BEGIN IMMEDIATE')

        return engine

    return create_engine(
        database_uri,
        echo=echo,
        pool_pre_ping=True,  # Enable connection health checks
        pool_size=10,
        max_overflow=20,
        **kwargs
    )


def build_session_factory(bind):
    """Session factory shared by the app and the tests."""
    return sessionmaker(autocommit=False, autoflush=False, bind=bind, expire_on_commit=False)


def init_db(app):
    """Initialize database connection."""
    global engine, db_session

    engine = build_engine(
        app.config['SQLALCHEMY_DATABASE_URI'],
        echo=app.config.get('SQLALCHEMY_ECHO', False),
        **app.config.get('SQLALCHEMY_ENGINE_OPTIONS', {})
    )

    db_session = scoped_session(build_session_factory(engine))

    # Register teardown
    @app.teardown_appcontext
    def shutdown_session(exception=None):
        """Close database session and rollback on error."""
        if exception:
            db_session.rollback()
        db_session.remove()


def get_session():
    """Get database session."""
    return db_session


# BIGINT ids on PostgreSQL; SQLite only autoincrements INTEGER PRIMARY KEY
ID_TYPE = BigInteger().with_variant(Integer, 'sqlite')
JSON_TYPE = JSON().with_variant(JSONB, 'postgresql')
