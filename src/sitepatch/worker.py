"""Background job processing: pop, ask the model chain, patch, persist."""
from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Any

from sitepatch.config import SitePatchConfig
from sitepatch.errors import OracleError, OracleTimeoutError, ParseError
from sitepatch.model.job import Job, JobStatus
from sitepatch.oracle.client import Oracle, as_oracle_error
from sitepatch.oracle.output import validate_output
from sitepatch.oracle.prompts import CSS_FILE, HTML_FILE, build_request, guess_target_section
from sitepatch.oracle.types import OracleOutput, OracleRequest
from sitepatch.patch.engine import PatchEngine
from sitepatch.patch.ops import PatchRequest
from sitepatch.store.repositories import JobQueue, JobRepository

logger = logging.getLogger(__name__)


class Worker:
    """Consumes the job queue one job at a time.

    Several workers may share one database; the queue's atomic pop hands each
    job id to exactly one of them.
    """

    def __init__(
        self,
        jobs: JobRepository,
        oracle: Oracle,
        config: SitePatchConfig,
        *,
        queue: JobQueue | None = None,
        engine: PatchEngine | None = None,
        sleep: Callable[[float], None] = time.sleep,
        name: str = "worker",
    ) -> None:
        self.jobs = jobs
        self.queue = queue or jobs.queue
        self.oracle = oracle
        self.config = config
        self.engine = engine or PatchEngine(protected_defaults=config.protected_selectors)
        self.name = name
        self._sleep = sleep
        # A call that overruns keeps its slot until it returns on its own;
        # the pool bounds how many such calls can pile up.
        self._pool = ThreadPoolExecutor(
            max_workers=max(2, len(config.model_chain)),
            thread_name_prefix=f"{name}-oracle",
        )

    def run(
        self,
        max_jobs: int | None = None,
        stop_event: threading.Event | None = None,
        *,
        drain: bool = False,
    ) -> int:
        """Poll the queue until stopped. Returns the number of ids consumed.

        Stops when *stop_event* is set, after *max_jobs* ids, or, with
        ``drain=True``, as soon as the queue is empty.
        """
        consumed = 0
        logger.info("%s started", self.name)
        while stop_event is None or not stop_event.is_set():
            if max_jobs is not None and consumed >= max_jobs:
                break
            if self.run_once():
                consumed += 1
                continue
            if drain:
                break
            if stop_event is not None:
                stop_event.wait(self.config.poll_interval)
            else:
                self._sleep(self.config.poll_interval)
        logger.info("%s stopped after %d job(s)", self.name, consumed)
        return consumed

    def run_once(self) -> bool:
        """Pop and process at most one job. False when the queue was empty."""
        job_id = self.queue.pop()
        if job_id is None:
            return False
        job = self.jobs.get(job_id)
        if job is None:
            logger.debug("Queued id %s has no job record, skipping", job_id)
            return True
        if job.status is not JobStatus.QUEUED:
            logger.debug("Job %s is already %s, skipping", job_id, job.status)
            return True
        try:
            self.process(job)
        except Exception as exc:
            logger.exception("Job %s crashed", job_id)
            current = self.jobs.get(job_id)
            if current is not None and current.status is JobStatus.RUNNING:
                self.jobs.transition(job_id, JobStatus.ERROR, error=f"internal error: {exc}")
        return True

    def process(self, job: Job) -> Job:
        """Run one job through the model chain and store the outcome."""
        job = self.jobs.transition(job.id, JobStatus.RUNNING)
        self._log(job.id, f"{self.name} picked up job")
        request = build_request(job.payload)
        last_failure = "no model attempted"

        for model in self.config.model_chain:
            self._log(job.id, f"trying model {model}")
            try:
                raw = self._call(model, request)
                output = validate_output(raw, expect=request.mode, model=model)
                result = self._post_process(job, request, output, model)
            except OracleError as exc:
                last_failure = f"model {model} failed: {exc}"
                self._log(job.id, last_failure)
                logger.warning("Job %s: %s", job.id, last_failure)
                continue
            except ParseError as exc:
                reason = f"cannot patch current files: {exc}"
                self._log(job.id, reason)
                return self.jobs.transition(job.id, JobStatus.ERROR, error=reason)

            self._log(job.id, f"model {model} succeeded")
            logger.info("Job %s done with %s", job.id, model)
            return self.jobs.transition(job.id, JobStatus.DONE, result=result)

        self._log(job.id, "all models failed")
        logger.error("Job %s failed: %s", job.id, last_failure)
        return self.jobs.transition(job.id, JobStatus.ERROR, error=last_failure)

    def _call(self, model: str, request: OracleRequest) -> Any:
        """Ask one model, giving up after ``config.oracle_timeout`` seconds.

        A call that overruns is abandoned on its pool thread.
        """
        timeout = self.config.oracle_timeout
        future = self._pool.submit(self.oracle.generate, model, request, timeout=timeout)
        try:
            return future.result(timeout=timeout)
        except FutureTimeoutError as exc:
            future.cancel()
            raise OracleTimeoutError(
                f"no answer within {timeout:g}s", model=model, cause=exc
            ) from exc
        except Exception as exc:
            raise as_oracle_error(exc, model) from exc

    def close(self) -> None:
        """Release the oracle thread pool without waiting for abandoned calls."""
        self._pool.shutdown(wait=False, cancel_futures=True)

    def _post_process(
        self,
        job: Job,
        request: OracleRequest,
        output: OracleOutput,
        model: str,
    ) -> dict[str, Any]:
        if output.mode == "site":
            return {
                "files": dict(output.files),
                "model": model,
                "mode": "site",
            }

        files = dict(job.payload.files)
        html = files.get(HTML_FILE, "")
        root = (
            output.target_root
            or request.target_root
            or guess_target_section(job.payload.prompt, html)
        )
        patched = self.engine.apply(
            PatchRequest(
                html=html,
                css=files.get(CSS_FILE, ""),
                ops=output.ops,
                root_selector=root,
                protected_selectors=job.payload.protected_selectors,
                max_ops=self.config.max_ops,
            )
        )
        files[HTML_FILE] = patched.html
        files[CSS_FILE] = patched.css
        self._log(job.id, f"applied {patched.changed_count} change(s) within {root}")
        return {
            "files": files,
            "model": model,
            "mode": "ops",
            "targetRoot": root,
            "changed": patched.changed_count,
            "applied": [change.to_dict() for change in patched.applied_log],
            "notes": output.notes,
        }

    def _log(self, job_id: str, line: str) -> None:
        self.jobs.append_log(job_id, line)
