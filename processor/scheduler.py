import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from core.config import Settings, settings as default_settings
from core.database import create_engine, create_session_maker, init_models
from processor.runner import Consumer, LogsProcessor
from processor.status import RunResult
from storage.sql import SQLCheckpointStore

logger = logging.getLogger(__name__)


class ProcessorScheduler:
    """Runs the logs processor for one stream on a fixed interval"""

    def __init__(self, consumer: Consumer, app_settings: Optional[Settings] = None):
        self.settings = app_settings or default_settings
        self.consumer = consumer
        self.scheduler = AsyncIOScheduler()
        self.engine = create_engine(self.settings.DATABASE_URL)
        self.SessionLocal = create_session_maker(self.engine)
        self._models_ready = False

    async def run_processor_job(self) -> Optional[RunResult]:
        """Job to run one processor pass"""
        logger.info("Scheduler: Starting logs processor job")
        store = SQLCheckpointStore(self.SessionLocal, self.settings.LOGS_STREAM_NAME)

        try:
            if not self._models_ready:
                await init_models(self.engine)
                self._models_ready = True

            processor = LogsProcessor.from_settings(store, self.settings)
            result = await processor.run(self.consumer)

            if not result.status.ok:
                logger.warning(f"Scheduler: run finished with errors - {result.to_dict()}")
                await store.mark_failed(
                    "; ".join(str(e) for e in result.status.errors) or str(result.status.checkpoint_error),
                    partial=result.status.logs_processed > 0
                )
            return result

        except Exception as e:
            logger.error(f"Scheduler: logs processor job failed - {e}")
            return None

    def start(self):
        """Start the scheduler"""
        self.scheduler.add_job(
            self.run_processor_job,
            trigger=IntervalTrigger(minutes=self.settings.SCHEDULE_INTERVAL_MINUTES),
            id="logs_processor_job",
            max_instances=1,  # one writer per checkpoint
            coalesce=True,
            replace_existing=True
        )
        self.scheduler.start()
        logger.info("Logs processor scheduler started")

    def stop(self):
        self.scheduler.shutdown()
        logger.info("Logs processor scheduler stopped")
