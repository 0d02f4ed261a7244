"""
Base class for discovery services that track their progress in an import run
"""

from typing import Any, Dict, List, Optional
import logging

from models.base import ImportStatus, ImportType
from models.data_import import DataImport
from schemas.discovery import DiscoveryResult, ImportErrorEntry
from repositories.contracts import ImportsRepository
from core.exceptions import GenealogyException

logger = logging.getLogger(__name__)


class ImportTrackedService:
    """
    Base class for services backed by a DataImport record.

    Responsibilities:
    - Import run creation (or reuse of a queued run)
    - Progress checkpoints
    - Final status selection and completion
    """

    def __init__(self, imports: ImportsRepository):
        self.imports = imports
        self.run_record: Optional[DataImport] = None

    async def start_run(
        self,
        import_type: ImportType,
        search_value: str,
        family_tree_id: str,
        user_id: Optional[int] = None,
        import_id: Optional[str] = None
    ) -> DataImport:
        """Create the run (or load a pre-created one) and mark it processing"""
        run = await self.imports.find(import_id) if import_id else None
        if run is None:
            run = await self.imports.create_run(import_type, search_value, family_tree_id, user_id)
        await self.imports.mark_processing(run.id)
        self.run_record = run
        logger.info(f"Started {import_type.value} import {run.id} for {search_value}")
        return run

    async def checkpoint(self, result: DiscoveryResult) -> None:
        if self.run_record is None:
            return
        await self.imports.update_progress(
            self.run_record.id,
            result.counters(),
            [entry.model_dump() for entry in result.errors]
        )

    async def complete_run(self, result: DiscoveryResult, summary: Optional[Dict[str, Any]] = None) -> DiscoveryResult:
        result.status = self.final_status(result)
        if self.run_record is not None:
            await self.checkpoint(result)
            await self.imports.mark_completed(self.run_record.id, result.status, summary or {})
            logger.info(
                f"Import {self.run_record.id} finished with status {result.status.value}: "
                f"{result.counters()}, {len(result.errors)} errors"
            )
        return result

    async def fail_run(self, error: Exception) -> None:
        if self.run_record is None:
            return
        message = error.message if isinstance(error, GenealogyException) else str(error)
        try:
            await self.imports.mark_failed(self.run_record.id, message)
        except GenealogyException as e:
            logger.error(
                f"Could not mark import {self.run_record.id} failed: {e.message}",
                extra={"error_context": e.to_dict()}
            )

    def final_status(self, result: DiscoveryResult) -> ImportStatus:
        """
        success without errors; partial with errors when at least one person
        was created; failed with errors and nobody created
        """
        if not result.errors:
            return ImportStatus.SUCCESS
        if result.persons_created:
            return ImportStatus.PARTIAL
        return ImportStatus.FAILED

    @staticmethod
    def record_error(result: DiscoveryResult, person: Optional[str], error: Exception) -> None:
        message = error.message if isinstance(error, GenealogyException) else str(error)
        result.errors.append(ImportErrorEntry(person=person, error=message))

    @staticmethod
    def note_unrecognized(result: DiscoveryResult, codes: List[Optional[str]]) -> None:
        for code in codes:
            if code and code not in result.unrecognized_relation_codes:
                result.unrecognized_relation_codes.append(code)
