"""End-to-end Bagrut record processing."""

import logging
from typing import Any

from app.schemas.bagrut import BagrutProcessingResult, RecordKind
from app.services.bagrut_migration import StructureMigrator
from app.services.bagrut_progress import ProgressReporter
from app.services.bagrut_validation import RecordValidator
from app.services.bagrut_version import VersionDetector

logger = logging.getLogger(__name__)


class BagrutPipeline:
    """Runs detection, migration, validation and reporting in order."""

    def __init__(
        self,
        detector: VersionDetector,
        migrator: StructureMigrator,
        validator: RecordValidator,
        reporter: ProgressReporter,
    ):
        self.detector = detector
        self.migrator = migrator
        self.validator = validator
        self.reporter = reporter

    def process(self, raw: Any) -> BagrutProcessingResult:
        """Process a raw record as fetched from storage.

        A failed migration stops the pipeline: the original record is
        returned and must not be written back.
        """
        detection = self.detector.detect(raw)
        record = raw
        migration = None

        if detection.kind is not RecordKind.CURRENT:
            migration = self.migrator.migrate(raw)
            if not migration.success:
                logger.warning(f"[BAGRUT PIPELINE] Migration failed: {migration.errors}")
                return BagrutProcessingResult(
                    detection=detection,
                    migration=migration,
                    record=migration.migrated_data,
                )
            record = migration.migrated_data

        validation = self.validator.validate(record)
        report = self.reporter.generate(record)
        return BagrutProcessingResult(
            detection=detection,
            migration=migration,
            validation=validation,
            report=report,
            record=record,
        )
