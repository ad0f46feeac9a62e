from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from healthtrack.core.config import settings

if settings.is_sqlite:
    # sqlite connections are shared across the request threadpool
    engine_kwargs = {"connect_args": {"check_same_thread": False}}
    if settings.SQLALCHEMY_DATABASE_URI in ("sqlite://", "sqlite:///:memory:"):
        engine_kwargs["poolclass"] = StaticPool
else:
    # PostgreSQL configuration with connection pooling
    engine_kwargs = {
        "pool_size": 10,
        "max_overflow": 20,
        "pool_recycle": 300,      # Recycle connections every 5 minutes
        "pool_pre_ping": True,    # Validate connections before use
        "pool_timeout": 30,
    }

engine = create_engine(
    settings.SQLALCHEMY_DATABASE_URI,
    echo=settings.SQLALCHEMY_ECHO,
    **engine_kwargs
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)
