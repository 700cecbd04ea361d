"""Background batch job controller.

A job pages through the collaborator feed, extracts skills per page and merges
them into the store. Control (pause/resume/cancel) goes through the persisted
job status only, so any process can steer a run started by another one. The
loop checks the status before every page and, while paused, polls it at a
fixed interval up to a bounded number of times.

States: pending -> running <-> paused -> completed | cancelled | error
"""
import logging
import threading
import time
from typing import Callable, List, Optional

from . import config
from .collaborators import HttpCollaboratorSource
from .errors import ConflictError, ExtractionError, FeedError, InvalidArgumentError, ResumeTimeoutError
from .extraction import extractor_for_mode
from .merger import ResultMerger
from .schemas import (
    ACTIVE_STATUSES,
    BatchJob,
    CollaboratorRecord,
    JobStatus,
    LogEntry,
    LogSeverity,
    utcnow_iso,
)
from .store import SkillStore

MODES = ("ai", "direct")


def _spawn_thread(fn: Callable, *args) -> None:
    t = threading.Thread(target=fn, args=args, daemon=True, name=f"batch-{args[0] if args else 'job'}")
    t.start()


def paginate(records: List[CollaboratorRecord], size: int) -> List[List[CollaboratorRecord]]:
    return [records[i:i + size] for i in range(0, len(records), size)]


class BatchJobController:
    def __init__(
        self,
        store: SkillStore,
        source_factory: Callable = HttpCollaboratorSource,
        extractor_factory: Callable = extractor_for_mode,
        settings: Optional[config.BatchSettings] = None,
        sleep: Callable[[float], None] = time.sleep,
        spawn: Callable = _spawn_thread,
    ):
        self.store = store
        self._source_factory = source_factory
        self._extractor_factory = extractor_factory
        self._settings = settings
        self._sleep = sleep
        self._spawn = spawn

    def settings_for(self, mode: str) -> config.BatchSettings:
        return self._settings or config.BatchSettings.from_env(mode)

    # --- control surface ---
    def start(self, tenant_id: str, mode: str = "ai", source_url: Optional[str] = None, limit: Optional[int] = None) -> str:
        if not tenant_id:
            raise InvalidArgumentError("tenant_id is required")
        if mode not in MODES:
            raise InvalidArgumentError(f"unknown mode: {mode}")
        if limit is not None and limit <= 0:
            raise InvalidArgumentError("limit must be a positive integer")
        job_id = self.store.insert_job(tenant_id, mode, source_url)
        logging.info(f"BATCH start job={job_id} tenant={tenant_id} mode={mode} source={source_url or 'default'}")
        self._spawn(self.run, job_id, tenant_id, mode, source_url, limit)
        return job_id

    def pause(self, job_id: str, tenant_id: Optional[str] = None) -> None:
        self._control(job_id, tenant_id, JobStatus.PAUSED, (JobStatus.RUNNING,))

    def resume(self, job_id: str, tenant_id: Optional[str] = None) -> None:
        self._control(job_id, tenant_id, JobStatus.RUNNING, (JobStatus.PAUSED,))

    def cancel(self, job_id: str, tenant_id: Optional[str] = None) -> None:
        self._control(job_id, tenant_id, JobStatus.CANCELLED, ACTIVE_STATUSES, completed_at=utcnow_iso())

    def status(self, tenant_id: str) -> Optional[BatchJob]:
        if not tenant_id:
            raise InvalidArgumentError("tenant_id is required")
        return self.store.latest_job(tenant_id)

    def _control(self, job_id: str, tenant_id: Optional[str], target: JobStatus, allowed_from, **fields) -> None:
        job = self.store.get_job(job_id, tenant_id=tenant_id)
        if not self.store.transition(job_id, target, allowed_from=allowed_from, **fields):
            current = self.store.job_status(job_id) or job.status
            raise ConflictError(f"cannot move job from {current.value} to {target.value}", job_id=job_id)
        logging.info(f"BATCH job={job_id} -> {target.value}")

    # --- processing loop ---
    def _log(self, job_id: str, message: str, severity: LogSeverity, limit: int) -> None:
        level = {LogSeverity.ERROR: logging.ERROR, LogSeverity.WARNING: logging.WARNING}.get(severity, logging.INFO)
        logging.log(level, f"BATCH job={job_id} {message}")
        self.store.append_log(job_id, LogEntry(message=message, severity=severity), limit=limit)

    def run(self, job_id: str, tenant_id: str, mode: str = "ai", source_url: Optional[str] = None, limit: Optional[int] = None) -> Optional[JobStatus]:
        """Process the whole feed for one job. Never raises; returns the final status."""
        settings = self.settings_for(mode)

        def log(message: str, severity: LogSeverity = LogSeverity.INFO) -> None:
            self._log(job_id, message, severity, settings.log_limit)

        try:
            records = self._load_feed(source_url, limit, log)
            pages = paginate(records, settings.page_size)
            started = self.store.transition(
                job_id,
                JobStatus.RUNNING,
                allowed_from=(JobStatus.PENDING,),
                total_collaborators=len(records),
                total_batches=len(pages),
                started_at=utcnow_iso(),
            )
            if not started:
                log("Job left pending state before processing started", LogSeverity.WARNING)
                return self.store.job_status(job_id)
            log(f"{len(records)} collaborators loaded ({len(pages)} batches)", LogSeverity.SUCCESS)

            extractor = self._extractor_factory(mode)
            merger = ResultMerger(self.store, tenant_id)
            for index, page in enumerate(pages):
                state = self._checkpoint(job_id, settings, log)
                if state != JobStatus.RUNNING:
                    return state
                log(f"Processing batch {index + 1}/{len(pages)} ({len(page)} collaborators)...")
                self.store.set_job_fields(job_id, current_batch=index)
                self._process_page(job_id, index, page, extractor, merger, log)
                if index < len(pages) - 1:
                    self._sleep(settings.inter_batch_delay)

            done = self.store.transition(
                job_id,
                JobStatus.COMPLETED,
                allowed_from=(JobStatus.RUNNING, JobStatus.PAUSED),
                current_batch=len(pages),
                completed_at=utcnow_iso(),
            )
            if not done:
                return self.store.job_status(job_id)
            log("Processing completed", LogSeverity.SUCCESS)
            return JobStatus.COMPLETED
        except FeedError as e:
            return self._fail(job_id, f"Fatal error loading collaborators: {e}", log)
        except ResumeTimeoutError as e:
            return self._fail(job_id, f"Timeout waiting for resume: {e}", log)
        except Exception as e:
            logging.exception(f"BATCH job={job_id} crashed")
            return self._fail(job_id, f"Fatal error: {type(e).__name__}: {e}", log)

    def _fail(self, job_id: str, message: str, log) -> JobStatus:
        log(message, LogSeverity.ERROR)
        self.store.transition(job_id, JobStatus.ERROR, allowed_from=ACTIVE_STATUSES, completed_at=utcnow_iso())
        return JobStatus.ERROR

    def _load_feed(self, source_url: Optional[str], limit: Optional[int], log) -> List[CollaboratorRecord]:
        url = config.default_feed_url(source_url)
        source = self._source_factory(url)
        if getattr(source, "converted", False):
            log(f"URL converted to raw: {source.url}")
        log(f"Loading collaborators from: {getattr(source, 'url', url)}")
        records = source.fetch()
        total = len(records)
        if limit is not None:
            if limit > total:
                log(f"Requested limit ({limit}) exceeds available collaborators ({total})", LogSeverity.WARNING)
            else:
                records = records[:limit]
                log(f"Limiting to {limit} collaborators (of {total} available)")
        return records

    def _checkpoint(self, job_id: str, settings: config.BatchSettings, log) -> Optional[JobStatus]:
        """Return RUNNING to continue, anything else to stop the loop."""
        status = self.store.job_status(job_id)
        if status == JobStatus.CANCELLED:
            log("Processing cancelled by user", LogSeverity.WARNING)
            return status
        if status != JobStatus.PAUSED:
            return status
        log("Processing paused - waiting for resume", LogSeverity.WARNING)
        waits = 0
        while True:
            self._sleep(settings.poll_interval)
            status = self.store.job_status(job_id)
            if status == JobStatus.RUNNING:
                log("Processing resumed")
                return status
            if status == JobStatus.CANCELLED:
                log("Processing cancelled", LogSeverity.WARNING)
                return status
            if status != JobStatus.PAUSED:
                return status
            waits += 1
            if waits >= settings.max_wait_polls:
                raise ResumeTimeoutError(f"job stayed paused for {waits} polls")

    def _process_page(self, job_id: str, index: int, page: List[CollaboratorRecord], extractor, merger: ResultMerger, log) -> None:
        try:
            results = extractor.extract(page)
        except ExtractionError as e:
            self.store.inc_counters(job_id, processed_collaborators=len(page), errors=1)
            log(f"Error in batch {index + 1}: {e}", LogSeverity.ERROR)
            return
        stats = merger.merge(results, page)
        self.store.inc_counters(
            job_id,
            processed_collaborators=len(page),
            skills_extracted=stats.skills_extracted,
            skills_created=stats.skills_created,
            users_created=stats.users_created,
            errors=stats.errors,
        )
        log(
            f"Batch {index + 1} done: {stats.skills_extracted} skills extracted, "
            f"{stats.skills_created} new skills, {stats.users_created} new users, {stats.errors} errors",
            LogSeverity.WARNING if stats.errors else LogSeverity.SUCCESS,
        )
