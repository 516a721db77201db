"""SQLAlchemy base declaration for all IRIS models."""
from sqlalchemy.orm import declarative_base

# Single Base so Base.metadata.create_all() sees every table
Base = declarative_base()
