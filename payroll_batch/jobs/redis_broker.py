"""Redis-backed payroll job broker.

Features:
- Priority ordering (lower numeric priority value = dispatched first, FIFO within a priority).
- Delayed re-dispatch for retried attempts (exponential backoff decided by the supervisor).
- Per-job state hash readable by pollers (state, progress, attempts, result, failure reason).
- Bounded retention of completed / failed jobs.
- Every Redis round trip feeds the injected ``BrokerAvailability``: success marks the
  broker ready, any connection/command error marks it unavailable.

Data structures in Redis (``<p>`` = QUEUE_SETTINGS["key_prefix"]):
 1. String     <p>:id          - job id counter (INCR)
 2. Hash       <p>:job:<id>    - data, priority, state, progress, attempts_made, result, failed_reason
 3. Sorted Set <p>:wait        - members=job ids, score=priority * 10^12 + id
 4. Sorted Set <p>:delayed     - members=job ids, score=ready_at epoch seconds
 5. Set        <p>:active      - job ids currently held by a worker
 6. Lists      <p>:completed / <p>:failed - newest first, trimmed to keep_completed / keep_failed

On fetch:
  - Requeue stalled jobs: active ids whose ``locked_until`` lease has lapsed.
    The interrupted run counts as a spent attempt.
  - Promote any delayed jobs whose ready_at <= now back to the wait set.
  - ZPOPMIN the wait set (atomic, so concurrent workers never share a job).

A worker holds the lease from fetch and renews it with every progress update.
"""
from __future__ import annotations

import json
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Iterator, Optional

import redis

from payroll_batch.config import QUEUE_SETTINGS
from payroll_batch.exceptions import BrokerUnavailableError
from payroll_batch.jobs.availability import BrokerAvailability
from payroll_batch.jobs.payroll_job import JobResult, PayrollRunRequest
from payroll_batch.utils import get_logger

logger = get_logger(__name__)

_PRIORITY_SPAN = 10 ** 12


@dataclass(slots=True)
class BrokerJob:
    job_id: str
    request: PayrollRunRequest
    attempts_made: int
    priority: int
    last_error: Optional[str] = None


class RedisJobBroker:
    def __init__(self, availability: BrokerAvailability, *, redis_url: Optional[str] = None, key_prefix: Optional[str] = None) -> None:
        self._availability = availability
        self._redis_url: str = str(redis_url or QUEUE_SETTINGS.get("redis_url", "redis://127.0.0.1:6379/0"))
        prefix = str(key_prefix or QUEUE_SETTINGS.get("key_prefix", "payroll"))
        self._id_key = f"{prefix}:id"
        self._job_prefix = f"{prefix}:job:"
        self._wait_key = f"{prefix}:wait"
        self._delayed_key = f"{prefix}:delayed"
        self._active_key = f"{prefix}:active"
        self._completed_key = f"{prefix}:completed"
        self._failed_key = f"{prefix}:failed"
        self._prefix = prefix
        self._health_check_timeout = float(QUEUE_SETTINGS.get("health_check_timeout", 2.0))
        self._keep_completed = int(QUEUE_SETTINGS.get("keep_completed", 100))
        self._keep_failed = int(QUEUE_SETTINGS.get("keep_failed", 50))
        self._warn_depth = int(QUEUE_SETTINGS.get("warn_depth", 1000))
        self._stall_timeout = float(QUEUE_SETTINGS.get("stall_timeout", 300.0))

        self._redis_client: Optional[redis.Redis] = None
        self._init_redis_client()

    def _init_redis_client(self) -> None:
        """Create the client and probe it once; the result seeds the availability signal."""
        try:
            logger.info("Connecting to Redis", url=self._redis_url)
            self._redis_client = redis.from_url(
                self._redis_url,
                decode_responses=True,
                socket_connect_timeout=self._health_check_timeout,
            )
            self._redis_client.ping()
            self._availability.mark_ready()
            logger.info("Connected to Redis successfully", url=self._redis_url)
        except ValueError as e:
            # Malformed URL: nothing to reconnect to later
            self._redis_client = None
            self._availability.mark_error(e)
            logger.error("Invalid Redis URL, payroll runs will be synchronous", url=self._redis_url, error=str(e))
        except (redis.RedisError, ConnectionError) as e:
            self._availability.mark_error(e)
            logger.warning("Failed to connect to Redis, payroll runs will be synchronous", url=self._redis_url, error=str(e))

    @contextmanager
    def _redis_call(self, operation: str) -> Iterator[redis.Redis]:
        if self._redis_client is None:
            self._availability.mark_error("redis client not initialised")
            raise BrokerUnavailableError("redis client not initialised")
        try:
            yield self._redis_client
        except (redis.RedisError, ConnectionError) as e:
            logger.error("Redis error", operation=operation, error=str(e))
            self._availability.mark_error(e)
            raise BrokerUnavailableError(f"{operation} failed: {e}") from e
        else:
            self._availability.mark_ready()

    def _job_key(self, job_id: str) -> str:
        return f"{self._job_prefix}{job_id}"

    @staticmethod
    def _wait_score(priority: int, seq: int) -> float:
        return float(priority * _PRIORITY_SPAN + seq)

    # ----------------------------- health ----------------------------- #
    def ping(self) -> bool:
        """Probe the broker; never raises."""
        try:
            with self._redis_call("ping") as client:
                client.ping()
            return True
        except BrokerUnavailableError:
            return False

    # ----------------------------- producer API ----------------------------- #
    def add(self, request: PayrollRunRequest) -> str:
        """Enqueue a payroll run; returns the broker-assigned job id."""
        with self._redis_call("add") as client:
            job_id = str(client.incr(self._id_key))
            client.hset(self._job_key(job_id), mapping={
                "data": json.dumps(request.to_dict()),
                "priority": int(request.priority),
                "state": "waiting",
                "progress": 0,
                "attempts_made": 0,
                "created_at": time.time(),
            })
            client.zadd(self._wait_key, {job_id: self._wait_score(int(request.priority), int(job_id))})
            depth = int(client.zcard(self._wait_key) or 0)
        if depth >= self._warn_depth:
            logger.warning("Queue depth warning", depth=depth)
        return job_id

    # ----------------------------- consumer API ----------------------------- #
    def _promote_delayed(self, client: redis.Redis) -> None:
        due = client.zrangebyscore(self._delayed_key, 0, time.time()) or []
        for job_id in due:
            # Only the caller that removes the entry re-queues it
            if not client.zrem(self._delayed_key, job_id):
                continue
            priority = int(client.hget(self._job_key(job_id), "priority") or 0)
            client.zadd(self._wait_key, {job_id: self._wait_score(priority, int(job_id))})
            client.hset(self._job_key(job_id), mapping={"state": "waiting"})
        if due:
            logger.debug("Promoted delayed jobs to wait set", count=len(due))

    def _requeue_stalled(self, client: redis.Redis) -> list[str]:
        now = time.time()
        requeued: list[str] = []
        for job_id in client.smembers(self._active_key) or []:
            key = self._job_key(job_id)
            raw = client.hgetall(key)
            if raw and float(raw.get("locked_until") or 0) > now:
                continue
            # Only the caller that removes the entry re-queues it
            if not client.srem(self._active_key, job_id):
                continue
            if not raw:
                continue
            attempts_made = int(raw.get("attempts_made") or 0) + 1
            client.hset(key, mapping={
                "state": "waiting",
                "attempts_made": attempts_made,
                "failed_reason": "job stalled",
            })
            client.zadd(self._wait_key, {job_id: self._wait_score(int(raw.get("priority") or 0), int(job_id))})
            requeued.append(str(job_id))
        if requeued:
            logger.warning("Requeued stalled payroll jobs", job_ids=requeued)
        return requeued

    def recover_stalled(self) -> list[str]:
        """Hand active jobs with a lapsed lease back to the wait set; returns their ids."""
        with self._redis_call("recover_stalled") as client:
            return self._requeue_stalled(client)

    def fetch_next(self) -> Optional[BrokerJob]:
        """Pop the next ready job and mark it active. Returns None when nothing is ready."""
        with self._redis_call("fetch_next") as client:
            self._requeue_stalled(client)
            self._promote_delayed(client)
            popped = client.zpopmin(self._wait_key, 1)
            if not popped:
                return None
            job_id = str(popped[0][0])
            raw = client.hgetall(self._job_key(job_id))
            if not raw or "data" not in raw:
                logger.warning("Dropping job with missing payload", job_id=job_id)
                return None
            client.sadd(self._active_key, job_id)
            now = time.time()
            client.hset(self._job_key(job_id), mapping={
                "state": "active",
                "started_at": now,
                "locked_until": now + self._stall_timeout,
            })
        return BrokerJob(
            job_id=job_id,
            request=PayrollRunRequest.from_dict(json.loads(raw["data"])),
            attempts_made=int(raw.get("attempts_made") or 0),
            priority=int(raw.get("priority") or 0),
            last_error=raw.get("failed_reason") or None,
        )

    def update_progress(self, job_id: str, progress: int) -> None:
        """Record progress (never lowering the stored value) and renew the job's lease."""
        with self._redis_call("update_progress") as client:
            key = self._job_key(job_id)
            stored = int(client.hget(key, "progress") or 0)
            client.hset(key, mapping={
                "progress": max(stored, min(100, int(progress))),
                "locked_until": time.time() + self._stall_timeout,
            })

    def complete(self, job_id: str, result: JobResult, *, attempts_made: int) -> None:
        with self._redis_call("complete") as client:
            client.srem(self._active_key, job_id)
            client.hset(self._job_key(job_id), mapping={
                "state": "completed",
                "progress": 100,
                "attempts_made": attempts_made,
                "result": json.dumps(result.to_dict()),
                "finished_at": time.time(),
            })
            client.lpush(self._completed_key, job_id)
            self._trim(client, self._completed_key, self._keep_completed)

    def fail(self, job_id: str, error: str, *, attempts_made: int) -> None:
        with self._redis_call("fail") as client:
            client.srem(self._active_key, job_id)
            client.hset(self._job_key(job_id), mapping={
                "state": "failed",
                "attempts_made": attempts_made,
                "failed_reason": error,
                "finished_at": time.time(),
            })
            client.lpush(self._failed_key, job_id)
            self._trim(client, self._failed_key, self._keep_failed)

    def retry_later(self, job_id: str, delay_seconds: float, *, attempts_made: int, error: str) -> None:
        with self._redis_call("retry_later") as client:
            client.srem(self._active_key, job_id)
            client.hset(self._job_key(job_id), mapping={
                "state": "delayed",
                "attempts_made": attempts_made,
                "failed_reason": error,
            })
            client.zadd(self._delayed_key, {job_id: time.time() + max(0.0, delay_seconds)})

    def _trim(self, client: redis.Redis, list_key: str, keep: int) -> None:
        stale = client.lrange(list_key, keep, -1) or []
        if not stale:
            return
        client.ltrim(list_key, 0, keep - 1)
        for job_id in stale:
            client.delete(self._job_key(job_id))

    # ----------------------------- inspection ----------------------------- #
    def get_job(self, job_id: str) -> Optional[dict[str, Any]]:
        with self._redis_call("get_job") as client:
            raw = client.hgetall(self._job_key(job_id))
        if not raw:
            return None
        result = JobResult.from_dict(json.loads(raw["result"])) if raw.get("result") else None
        return {
            "job_id": str(job_id),
            "state": raw.get("state", "waiting"),
            "progress": int(raw.get("progress") or 0),
            "attempts_made": int(raw.get("attempts_made") or 0),
            "result": result,
            "error": raw.get("failed_reason") or None,
            "data": json.loads(raw["data"]) if raw.get("data") else None,
        }

    def counts(self) -> dict[str, int]:
        with self._redis_call("counts") as client:
            return {
                "waiting": int(client.zcard(self._wait_key) or 0),
                "active": int(client.scard(self._active_key) or 0),
                "completed": int(client.llen(self._completed_key) or 0),
                "failed": int(client.llen(self._failed_key) or 0),
                "delayed": int(client.zcard(self._delayed_key) or 0),
            }

    def purge(self) -> None:
        """Remove every key owned by this broker (for testing)."""
        with self._redis_call("purge") as client:
            keys = list(client.keys(f"{self._prefix}:*") or [])
            if keys:
                client.delete(*keys)
        logger.info("Payroll broker purged", keys=len(keys))


__all__ = ["RedisJobBroker", "BrokerJob"]
