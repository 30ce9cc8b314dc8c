"""
Base Service Classes
====================

Base classes dan utilities untuk semua services
"""

from typing import Optional, Dict, Any, List
from functools import wraps
import logging

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func

from .exceptions import NotFoundError

logger = logging.getLogger(__name__)

def transactional(func):
    """Decorator untuk automatic transaction management"""
    @wraps(func)
    async def wrapper(self, *args, **kwargs):
        try:
            result = await func(self, *args, **kwargs)
            if getattr(self, 'db_session', None) is not None:
                await self.db_session.commit()
            return result
        except Exception as e:
            if getattr(self, 'db_session', None) is not None:
                await self.db_session.rollback()
            logger.error(f"Transaction failed in {func.__name__}: {str(e)}")
            raise
    return wrapper

class BaseService:
    """Base service class dengan common functionality"""

    def __init__(self, db_session: AsyncSession, current_user: str = None):
        self.db_session = db_session
        self.current_user = current_user
        self.logger = logging.getLogger(self.__class__.__name__)

    async def _get_or_404(self, model_class, entity_id: int, workspace_id: int = None):
        """Get entity by ID (optionally tenant-scoped) or raise 404 error"""
        query = select(model_class).filter(model_class.id == entity_id)
        if workspace_id is not None:
            query = query.filter(model_class.workspace_id == workspace_id)
        result = await self.db_session.execute(query)
        entity = result.scalars().first()
        if not entity:
            raise NotFoundError(model_class.__name__, entity_id)
        return entity

    async def _first(self, query):
        result = await self.db_session.execute(query)
        return result.scalars().first()

    async def _paginate_query(self, query, page: int = 1, per_page: int = 20,
                              max_per_page: int = 100):
        """Paginate query results"""
        per_page = min(per_page, max_per_page)

        count_query = select(func.count()).select_from(query.subquery())
        total = (await self.db_session.execute(count_query)).scalar()

        pages = (total + per_page - 1) // per_page if total > 0 else 1
        offset = (page - 1) * per_page
        items_result = await self.db_session.execute(query.offset(offset).limit(per_page))
        items = items_result.scalars().all()

        return {
            'items': items,
            'pagination': {
                'page': page,
                'per_page': per_page,
                'total': total,
                'pages': pages,
                'has_prev': page > 1,
                'has_next': page < pages
            }
        }

    def _apply_filters(self, query, model_class, filters: Optional[Dict[str, Any]]):
        """Apply equality filters to query, ignoring None values"""
        for field, value in (filters or {}).items():
            if value is not None and hasattr(model_class, field):
                query = query.filter(getattr(model_class, field) == value)
        return query

    def _apply_sorting(self, query, model_class, sort_by: str = None,
                       sort_order: str = 'asc', default_sort: str = 'id'):
        """Apply sorting to query"""
        field_attr = getattr(model_class, sort_by or default_sort, None)
        if field_attr is None:
            field_attr = getattr(model_class, default_sort)
        if sort_order.lower() == 'desc':
            return query.order_by(field_attr.desc())
        return query.order_by(field_attr.asc())

def serialize_items(schema, items: List[Any]) -> List[Dict[str, Any]]:
    return [schema.model_validate(item).model_dump(mode='json') for item in items]
