"""Deferred activity dispatch.

Busy companies' activities are handed to an in-process queue instead of
being written on the caller's thread. Worker threads each push their own
app context (so each has its own session and tenant state) and persist one
payload at a time through the same Activity.create_from_payload() the
synchronous path uses, so both paths store identical records.

Failures:
    transient (OperationalError, DisconnectionError, TimeoutError)
        retried up to ACTIVITY_JOB_MAX_ATTEMPTS with exponential backoff
    anything else, or retries exhausted
        logged at ERROR and parked in activity_dead_letters

Queued events are not visible to summaries until a worker has written them.

The queue lives in the producing process only; there is no separate worker
process. At interpreter exit shutdown() stops the workers and drains any
payloads still queued, so each is stored or dead-lettered.
"""

import atexit
import logging
import queue
import threading
import time
from datetime import datetime

from flask import current_app
from sqlalchemy.exc import DisconnectionError, OperationalError

from activity_app.extensions import db
from activity_app.middleware.tenant import with_tenant
from activity_app.models.activity import Activity
from activity_app.models.dead_letter import ActivityDeadLetter
from activity_app.models.user import User

logger = logging.getLogger(__name__)

TRANSIENT_ERRORS = (OperationalError, DisconnectionError, TimeoutError)

_STOP = object()


class PayloadError(LookupError):
    """A queued payload cannot be persisted (e.g. its user no longer exists)."""


def _serialize(payload):
    """JSON-safe copy of a tracking payload."""
    data = dict(payload)
    if isinstance(data.get("occurred_at"), datetime):
        data["occurred_at"] = data["occurred_at"].isoformat()
    data["metadata"] = dict(data.get("metadata") or {})
    return data


def perform(payload):
    """Persist one payload inside its user's tenant. Commits on success."""
    user = db.session.get(User, payload.get("user_id"))
    if user is None:
        raise PayloadError(f"User {payload.get('user_id')} not found.")

    with with_tenant(user.company_id):
        activity = Activity.create_from_payload(
            dict(payload, company_id=user.company_id)
        )
        db.session.commit()
    return activity


class ActivityQueue:
    """In-process work queue for deferred activity writes."""

    def __init__(self, app=None):
        self._queue = queue.Queue()
        self._threads = []
        self.app = None
        if app is not None:
            self.init_app(app)

    def init_app(self, app):
        self.app = app
        app.extensions["activity_queue"] = self

    # --- Producer side ---

    def enqueue(self, payload):
        self._queue.put(_serialize(payload))
        logger.info(
            f"Activity queued for user {payload.get('user_id')} "
            f"({payload.get('activity_type')})"
        )

    def pending_count(self):
        return self._queue.qsize()

    def clear(self):
        """Drop every pending payload. Returns how many were dropped."""
        dropped = 0
        while True:
            try:
                payload = self._queue.get_nowait()
            except queue.Empty:
                return dropped
            self._queue.task_done()
            if payload is not _STOP:
                dropped += 1

    # --- Consumer side ---

    def process(self, payload):
        """Run one payload with bounded retries.

        Returns the Activity, or None if the payload was dead-lettered.
        """
        config = self.app.config if self.app else current_app.config
        max_attempts = max(int(config.get("ACTIVITY_JOB_MAX_ATTEMPTS", 3)), 1)
        backoff = float(config.get("ACTIVITY_JOB_BACKOFF_SECONDS", 5))

        attempt = 1
        while True:
            try:
                return perform(payload)
            except TRANSIENT_ERRORS as e:
                db.session.rollback()
                if attempt >= max_attempts:
                    self._dead_letter(payload, e, attempt)
                    return None
                delay = backoff * (2 ** (attempt - 1))
                logger.warning(
                    f"Activity write failed (attempt {attempt}/{max_attempts}), "
                    f"retrying in {delay:.1f}s: {e}"
                )
                if delay:
                    time.sleep(delay)
                attempt += 1
            except Exception as e:
                db.session.rollback()
                self._dead_letter(payload, e, attempt)
                return None

    def _dead_letter(self, payload, error, attempts):
        logger.error(
            f"Activity write abandoned after {attempts} attempt(s) for user "
            f"{payload.get('user_id')}: {type(error).__name__}: {error}"
        )
        try:
            db.session.add(ActivityDeadLetter(
                payload=payload,
                error_class=type(error).__name__,
                error_message=str(error),
                attempts=attempts,
            ))
            db.session.commit()
        except Exception as e:
            # Database is unreachable; the ERROR log above is the only record.
            db.session.rollback()
            logger.error(f"Could not store dead letter: {e}")

    def process_pending(self):
        """Drain the queue on the calling thread. Returns payloads handled."""
        handled = 0
        while True:
            try:
                payload = self._queue.get_nowait()
            except queue.Empty:
                return handled
            try:
                if payload is _STOP:
                    continue
                self.process(payload)
                handled += 1
            finally:
                self._queue.task_done()

    def _worker(self, app):
        """Worker loop: one payload at a time inside a fresh app context."""
        while True:
            payload = self._queue.get()
            try:
                if payload is _STOP:
                    return
                with app.app_context():
                    self.process(payload)
            except Exception as e:
                logger.error(f"Activity worker error: {e}")
            finally:
                self._queue.task_done()

    def start(self, app=None, workers=None):
        """Start worker threads (daemon, so they never block shutdown)."""
        app = app or self.app
        if workers is None:
            workers = app.config.get("ACTIVITY_QUEUE_WORKERS", 0)
        for i in range(workers):
            thread = threading.Thread(
                target=self._worker,
                args=(app,),
                name=f"activity-worker-{i}",
                daemon=True,
            )
            thread.start()
            self._threads.append(thread)
        if workers:
            logger.info(f"Started {workers} activity worker(s)")

    def stop(self, wait=True):
        """Ask every worker to exit once the queue ahead of it is done."""
        for _ in self._threads:
            self._queue.put(_STOP)
        if wait:
            for thread in self._threads:
                thread.join()
        self._threads = []

    def shutdown(self, timeout=5.0):
        """Exit hook: stop the workers, then drain what they did not reach.

        Leftover payloads run on the calling thread, so each one is either
        stored or dead-lettered instead of vanishing with the process.
        Returns how many payloads were drained here.
        """
        threads, self._threads = self._threads, []
        for _ in threads:
            self._queue.put(_STOP)
        for thread in threads:
            thread.join(timeout)

        if self.app is None or not self.pending_count():
            return 0
        with self.app.app_context():
            handled = self.process_pending()
        if handled:
            logger.warning(f"Drained {handled} queued activity write(s) at shutdown")
        return handled

    def join(self):
        """Block until every queued payload has been handled."""
        self._queue.join()


def get_activity_queue():
    return current_app.extensions["activity_queue"]


def init_activity_queue(app):
    """Attach a queue to the app, start its configured workers, and drain it
    at interpreter exit."""
    activity_queue = ActivityQueue(app)
    activity_queue.start(app)
    atexit.register(activity_queue.shutdown)
    return activity_queue
