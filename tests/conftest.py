import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from ragcore.models.Models import Base, Knowledge, KnowledgeBase
from ragcore.schemas.retrieval import HybridSearchResult

TENANT = "tenant-a"
OTHER_TENANT = "tenant-b"


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def db(engine):
    Session = sessionmaker(bind=engine, autoflush=False, autocommit=False)
    session = Session()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def seeded_db(db):
    """Two knowledge bases for TENANT, one for OTHER_TENANT."""
    db.add_all(
        [
            KnowledgeBase(id="kb-1", tenant_id=TENANT, name="Manuals", index_name="acme"),
            KnowledgeBase(id="kb-2", tenant_id=TENANT, name="Notes", index_name=None),
            KnowledgeBase(id="kb-x", tenant_id=OTHER_TENANT, name="Foreign", index_name="other"),
        ]
    )
    db.flush()
    db.add_all(
        [
            Knowledge(
                id="doc-1",
                tenant_id=TENANT,
                knowledge_base_id="kb-1",
                title="Installation Guide",
                file_name="install.pdf",
                file_type="pdf",
                content_type="application/pdf",
            ),
            Knowledge(
                id="doc-2",
                tenant_id=TENANT,
                knowledge_base_id="kb-1",
                title="",
                file_name="faq.md",
                file_type="md",
                content_type=None,
            ),
            Knowledge(
                id="doc-x",
                tenant_id=OTHER_TENANT,
                knowledge_base_id="kb-x",
                title="Secret",
                file_name="secret.txt",
                file_type="txt",
                content_type="text/plain",
            ),
        ]
    )
    db.commit()
    return db


def make_result(id, score=1.0, content="", knowledge_id=""):
    return HybridSearchResult(id=id, score=score, content=content, knowledge_id=knowledge_id)
