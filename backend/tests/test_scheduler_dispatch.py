import asyncio
import uuid
from types import SimpleNamespace

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from db.session import Base
from workers.scheduler import dispatch_edi_partners

SHAW = uuid.UUID("00000000-0000-0000-0000-000000000101")
MOHAWK = uuid.UUID("00000000-0000-0000-0000-000000000102")


def test_dispatch_edi_partners_fans_out_only_active_edi_vendors(tmp_path, monkeypatch):
    from db.models import Vendor

    db_path = tmp_path / "dispatch.db"
    db_url = f"sqlite+aiosqlite:///{db_path}"
    engine = create_async_engine(db_url, echo=False)
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async def _seed() -> None:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        async with session_factory() as db:
            db.add_all(
                [
                    Vendor(id=SHAW, name="Shaw Floors", code="SHAW", status="active", edi_enabled=True),
                    Vendor(id=MOHAWK, name="Mohawk", code="MOHAWK", status="active", edi_enabled=True),
                    Vendor(name="Local Tile Co", code="TILECO", status="active", edi_enabled=False),
                    Vendor(name="Old Mill", code="OLDMILL", status="inactive", edi_enabled=True),
                ]
            )
            await db.commit()

    asyncio.run(_seed())

    monkeypatch.setattr("core.config.get_settings", lambda: SimpleNamespace(database_url=db_url))

    dispatched_calls: list[tuple[str, dict]] = []

    def _capture_send_task(task_name: str, kwargs: dict):
        dispatched_calls.append((task_name, kwargs))
        return None

    monkeypatch.setattr("workers.scheduler.celery_app.send_task", _capture_send_task)

    result = dispatch_edi_partners.run()
    assert result["status"] == "success"
    assert result["vendor_count"] == 2
    assert result["dispatched_count"] == 2

    task_names = {task for task, _ in dispatched_calls}
    assert task_names == {"workers.edi.poll_partner"}
    vendor_ids = {kwargs["vendor_id"] for _, kwargs in dispatched_calls}
    assert vendor_ids == {str(SHAW), str(MOHAWK)}

    asyncio.run(engine.dispose())


def test_dispatch_rejects_non_worker_task_names():
    result = dispatch_edi_partners.run(task_name="os.system")
    assert result["status"] == "failed"
    assert result["reason"] == "invalid_task_name"
