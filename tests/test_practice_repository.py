from __future__ import annotations

import pytest
from sqlalchemy.orm import Session, sessionmaker

from stageflow.db.connection import build_engine, init_db
from stageflow.domain.stages import FileMeta, QueryRecord
from stageflow.server.repository import PracticeRepository


@pytest.fixture
def db():
    engine = build_engine("sqlite://")
    init_db(bind=engine)
    session = sessionmaker(autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


def test_create_queries_reports_duplicates_and_foreign_records(db: Session) -> None:
    repo = PracticeRepository(db)

    created, failures = repo.create_queries(
        work_item_id="w-1",
        transition_id="tr-1",
        records=[
            QueryRecord(work_item_id="w-1", query_id="q1", description="a", money_in="1.20"),
            QueryRecord(work_item_id="w-2", query_id="q2", description="b"),
        ],
    )
    assert created == 1
    assert failures == [{"query_id": "q2", "message": "Query belongs to another project"}]

    created, failures = repo.create_queries(
        work_item_id="w-1",
        transition_id="tr-1",
        records=[QueryRecord(work_item_id="w-1", query_id="q1", description="again")],
    )
    assert created == 0
    assert failures == [{"query_id": "q1", "message": "Query already exists"}]

    (query,) = repo.list_queries("w-1")
    assert query.money_in == "1.20"
    assert query.status == "open"


def test_upload_paths_are_unique_per_request(db: Session) -> None:
    repo = PracticeRepository(db)
    meta = FileMeta(file_name="a.pdf", file_type="application/pdf", file_size=3)

    first = repo.create_upload("w-1", meta)
    second = repo.create_upload("w-1", meta)

    assert first.object_path != second.object_path
    assert first.object_path.startswith("stage-change-attachments/w-1/")
    assert first.object_path.endswith("/a.pdf")
    assert repo.get_upload(first.object_path).received_bytes is None
