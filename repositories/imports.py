"""
Import run tracking with SQLAlchemy async
"""

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, and_
from sqlalchemy.exc import SQLAlchemyError
import logging

from models.base import ImportStatus, ImportType
from models.data_import import DataImport
from core.exceptions import PersistenceError

logger = logging.getLogger(__name__)

COUNTER_FIELDS = ("persons_created", "persons_updated", "relationships_created", "duplicates_found")


class ImportsRepository:
    """
    Progress and audit records of discovery runs.

    A run moves pending -> processing -> one of success, partial or
    failed, and is finalized exactly once.
    """

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    async def _commit(self, operation: str):
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise PersistenceError(
                f"Failed to {operation}",
                context={"operation": operation, "table_name": "data_imports"},
                original_exception=e
            )

    async def _require(self, import_id: str) -> DataImport:
        run = await self.find(import_id)
        if run is None:
            raise PersistenceError(
                f"Import run {import_id} not found",
                context={"operation": "load", "table_name": "data_imports", "import_id": import_id}
            )
        return run

    async def create_run(
        self,
        import_type: ImportType,
        search_value: str,
        family_tree_id: str,
        user_id: Optional[int] = None
    ) -> DataImport:
        run = DataImport(
            import_type=import_type,
            search_value=search_value,
            family_tree_id=family_tree_id,
            user_id=user_id,
            status=ImportStatus.PENDING,
            persons_created=0,
            persons_updated=0,
            relationships_created=0,
            duplicates_found=0,
            errors=[],
        )
        self.db.add(run)
        await self._commit("create import run")
        await self.db.refresh(run)
        return run

    async def find(self, import_id: str) -> Optional[DataImport]:
        return await self.db.get(DataImport, import_id)

    async def mark_processing(self, import_id: str) -> None:
        run = await self._require(import_id)
        run.status = ImportStatus.PROCESSING
        run.started_at = datetime.utcnow()
        await self._commit("mark import processing")

    async def record_api_exchange(self, import_id: str, request: Dict[str, Any], response: Dict[str, Any]) -> None:
        run = await self._require(import_id)
        run.api_request = request
        run.api_response = response
        await self._commit("record api exchange")

    async def update_progress(
        self,
        import_id: str,
        counters: Dict[str, int],
        errors: Optional[List[Dict[str, Any]]] = None
    ) -> None:
        run = await self._require(import_id)
        for field in COUNTER_FIELDS:
            if field in counters:
                setattr(run, field, counters[field])
        if errors is not None:
            run.errors = list(errors)
        await self._commit("update import progress")

    async def mark_completed(self, import_id: str, status: ImportStatus, summary: Dict[str, Any]) -> None:
        run = await self._require(import_id)
        run.status = status
        run.import_summary = summary
        run.completed_at = datetime.utcnow()
        await self._commit("complete import run")

    async def mark_failed(self, import_id: str, message: str) -> None:
        run = await self._require(import_id)
        run.status = ImportStatus.FAILED
        run.error_message = message
        run.completed_at = datetime.utcnow()
        await self._commit("mark import failed")

    async def find_recent_similar(
        self,
        import_type: ImportType,
        search_value: str,
        family_tree_id: str,
        within_hours: int = 24
    ) -> Optional[DataImport]:
        """Most recent successful run for the same key within the window"""
        since = datetime.utcnow() - timedelta(hours=within_hours)
        result = await self.db.execute(
            select(DataImport)
            .where(
                and_(
                    DataImport.import_type == import_type,
                    DataImport.search_value == search_value,
                    DataImport.family_tree_id == family_tree_id,
                    DataImport.status == ImportStatus.SUCCESS,
                    DataImport.created_at >= since,
                )
            )
            .order_by(DataImport.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()
