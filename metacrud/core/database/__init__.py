"""
Persistence layer.

This package maps entities onto table hierarchies and runs the generic CRUD
engines on a synchronous SQLAlchemy engine.

Structure:
- storage.py: engine creation, units of work, driver error classification
- table_mapping.py: projection of an entity onto its tables
- dao.py: flat engine (read, create, save, delete)
- wrapper_dao.py: engine for parents with nested collections
- facade.py: request-scoped ``EntityDAO``
"""

from .dao import BaseDAO, FlatDAO, PaginationInfo, ReadResult
from .facade import EntityDAO
from .storage import Storage, create_storage_engine
from .table_mapping import TableMapping, TableMappingManager
from .wrapper_dao import WrapperDAO

__all__ = [
    "BaseDAO",
    "EntityDAO",
    "FlatDAO",
    "PaginationInfo",
    "ReadResult",
    "Storage",
    "TableMapping",
    "TableMappingManager",
    "WrapperDAO",
    "create_storage_engine",
]
