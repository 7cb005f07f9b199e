"""Pytest fixtures and factories.

Important: SQLAlchemy relationship configuration requires all model modules to be imported
before Base.metadata.create_all(), otherwise back_populates targets might not exist yet.

Redis is replaced by ``FakeRedis`` (patched over ``redis.from_url``), an in-memory
double implementing the subset of commands the payroll broker issues. Setting
``fake_redis.down = True`` makes every command raise ``redis.ConnectionError``.
"""
import fnmatch
import secrets
from decimal import Decimal
from unittest.mock import patch

import pytest
import redis
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from payroll_batch.database import Base
from payroll_batch.models.db import Employee, PayrollRecord, AuditLog  # noqa: F401  mapper config
from payroll_batch.models.db.enums import EmployeeStatus
from payroll_batch.jobs.availability import BrokerAvailability
from payroll_batch.jobs.gateway import PayrollJobGateway
from payroll_batch.jobs.redis_broker import RedisJobBroker
from payroll_batch.jobs.stats import QueueStatsReporter
from payroll_batch.jobs.status_registry import JobStatusRegistry
from payroll_batch.jobs.worker_payroll import PayrollWorkerPool
from payroll_batch.services.payroll_engine import PayrollWorker
from payroll_batch.services.payroll_queue_service import PayrollQueueService


class FakeRedis:
    """In-memory stand-in for a ``decode_responses=True`` redis client."""

    def __init__(self):
        self.down = False
        self.strings: dict[str, int] = {}
        self.hashes: dict[str, dict[str, str]] = {}
        self.zsets: dict[str, dict[str, float]] = {}
        self.sets: dict[str, set[str]] = {}
        self.lists: dict[str, list[str]] = {}

    def _check(self):
        if self.down:
            raise redis.ConnectionError("Connection refused")

    # --- generic ---
    def ping(self):
        self._check()
        return True

    def keys(self, pattern="*"):
        self._check()
        names = set(self.strings) | set(self.hashes) | set(self.zsets) | set(self.sets) | set(self.lists)
        return [k for k in names if fnmatch.fnmatchcase(k, pattern)]

    def delete(self, *keys):
        self._check()
        removed = 0
        for key in keys:
            for store in (self.strings, self.hashes, self.zsets, self.sets, self.lists):
                if key in store:
                    del store[key]
                    removed += 1
        return removed

    # --- strings ---
    def incr(self, key):
        self._check()
        self.strings[key] = self.strings.get(key, 0) + 1
        return self.strings[key]

    # --- hashes ---
    def hset(self, key, field=None, value=None, mapping=None):
        self._check()
        h = self.hashes.setdefault(key, {})
        items = dict(mapping or {})
        if field is not None:
            items[field] = value
        for k, v in items.items():
            h[str(k)] = str(v)
        return len(items)

    def hget(self, key, field):
        self._check()
        return self.hashes.get(key, {}).get(field)

    def hgetall(self, key):
        self._check()
        return dict(self.hashes.get(key, {}))

    # --- sorted sets ---
    def zadd(self, key, mapping):
        self._check()
        z = self.zsets.setdefault(key, {})
        added = sum(1 for m in mapping if m not in z)
        for member, score in mapping.items():
            z[str(member)] = float(score)
        return added

    def _sorted(self, key):
        return sorted(self.zsets.get(key, {}).items(), key=lambda kv: (kv[1], kv[0]))

    def zpopmin(self, key, count=1):
        self._check()
        popped = self._sorted(key)[:count]
        for member, _ in popped:
            del self.zsets[key][member]
        return popped

    def zrangebyscore(self, key, min_score, max_score):
        self._check()
        return [m for m, s in self._sorted(key) if float(min_score) <= s <= float(max_score)]

    def zrem(self, key, *members):
        self._check()
        z = self.zsets.get(key, {})
        removed = 0
        for member in members:
            if member in z:
                del z[member]
                removed += 1
        return removed

    def zcard(self, key):
        self._check()
        return len(self.zsets.get(key, {}))

    # --- sets ---
    def sadd(self, key, *members):
        self._check()
        s = self.sets.setdefault(key, set())
        before = len(s)
        s.update(str(m) for m in members)
        return len(s) - before

    def srem(self, key, *members):
        self._check()
        s = self.sets.get(key, set())
        before = len(s)
        s.difference_update(str(m) for m in members)
        return before - len(s)

    def smembers(self, key):
        self._check()
        return set(self.sets.get(key, set()))

    def scard(self, key):
        self._check()
        return len(self.sets.get(key, set()))

    # --- lists ---
    def lpush(self, key, *values):
        self._check()
        lst = self.lists.setdefault(key, [])
        for v in values:
            lst.insert(0, str(v))
        return len(lst)

    @staticmethod
    def _slice(lst, start, end):
        if end < 0:
            end = len(lst) + end
        return lst[start:end + 1]

    def lrange(self, key, start, end):
        self._check()
        return self._slice(self.lists.get(key, []), start, end)

    def ltrim(self, key, start, end):
        self._check()
        self.lists[key] = self._slice(self.lists.get(key, []), start, end)
        return True

    def llen(self, key):
        self._check()
        return len(self.lists.get(key, []))


@pytest.fixture()
def fake_redis():
    client = FakeRedis()
    with patch("redis.from_url", return_value=client):
        yield client


@pytest.fixture()
def session_factory():
    # Single shared in-memory connection; check_same_thread off for the TestClient threadpool
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture()
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def availability():
    return BrokerAvailability()


@pytest.fixture()
def registry():
    return JobStatusRegistry()


@pytest.fixture()
def broker(fake_redis, availability):
    return RedisJobBroker(availability)


@pytest.fixture()
def payroll_worker(session_factory):
    return PayrollWorker(session_factory)


@pytest.fixture()
def gateway(broker, availability, registry, payroll_worker):
    return PayrollJobGateway(broker, availability, registry, payroll_worker)


@pytest.fixture()
def worker_pool(broker, registry, payroll_worker):
    return PayrollWorkerPool(broker, registry, payroll_worker, concurrency=1, poll_interval=0.01)


@pytest.fixture()
def payroll_service(broker, availability, registry, gateway, worker_pool):
    return PayrollQueueService(
        availability=availability,
        registry=registry,
        gateway=gateway,
        stats_reporter=QueueStatsReporter(broker, availability, registry),
        broker=broker,
        pool=worker_pool,
    )


@pytest.fixture()
def client(payroll_service, session_factory):
    from payroll_batch.main import app
    from payroll_batch.api import deps

    def _override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    # Lifespan is not run by a bare TestClient; wire the service by hand
    app.state.payroll_queue_service = payroll_service
    app.dependency_overrides[deps.get_db] = _override_get_db
    yield TestClient(app)
    app.dependency_overrides.pop(deps.get_db, None)
    app.state.payroll_queue_service = None

# ---------- Data factory helpers ----------

@pytest.fixture()
def employee_factory(db_session):
    def _create(
        gross=None,
        *,
        tenant_id: str = "tenant-1",
        code: str | None = None,
        current=None,
        status: EmployeeStatus = EmployeeStatus.ACTIVE,
    ) -> Employee:
        e = Employee(
            tenant_id=tenant_id,
            employee_code=code or f"EMP-{secrets.token_hex(3)}",
            first_name="Test",
            last_name="Employee",
            status=status,
            gross_salary=Decimal(str(gross)) if gross is not None else None,
            current_salary=Decimal(str(current)) if current is not None else None,
        )
        db_session.add(e)
        db_session.commit()
        db_session.refresh(e)
        return e
    return _create


@pytest.fixture()
def payroll_count(session_factory):
    def _count(tenant_id: str = "tenant-1") -> int:
        session = session_factory()
        try:
            return session.query(PayrollRecord).filter(PayrollRecord.tenant_id == tenant_id).count()
        finally:
            session.close()
    return _count
