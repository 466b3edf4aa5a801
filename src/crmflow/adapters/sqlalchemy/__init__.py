"""SQLAlchemy adapter package for crmflow."""

from __future__ import annotations

from .mappings import create_all_tables, mapper_registry, start_mappers
from .repositories import (
    SqlAlchemyActivityRepository,
    SqlAlchemyContactRepository,
    SqlAlchemyDealRepository,
    SqlAlchemySourceEventRepository,
    SqlAlchemyTaskRepository,
)
from .unit_of_work import SqlAlchemyUnitOfWork, StartupError, shutdown, startup

__all__ = [
    "SqlAlchemyActivityRepository",
    "SqlAlchemyContactRepository",
    "SqlAlchemyDealRepository",
    "SqlAlchemySourceEventRepository",
    "SqlAlchemyTaskRepository",
    "SqlAlchemyUnitOfWork",
    "StartupError",
    "create_all_tables",
    "mapper_registry",
    "shutdown",
    "start_mappers",
    "startup",
]
