from sqlalchemy import Column, Text, String, DateTime, Integer, Index, JSON, Uuid
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func
import uuid_utils
import uuid


def generate_uuid7():
    """Generate UUIDv7 and convert to standard Python UUID"""
    uuid7_obj = uuid_utils.uuid7()
    return uuid.UUID(str(uuid7_obj))


Base = declarative_base()


class ScrapeJob(Base):
    __tablename__ = 'scrape_jobs'

    id = Column(Uuid, primary_key=True, default=generate_uuid7)
    job_id = Column(String(100), unique=True, nullable=False)
    job_type = Column(String(50), nullable=False, index=True)
    status = Column(String(20), nullable=False, default="pending", index=True)
    priority = Column(Integer, nullable=False, default=0)
    parameters = Column(JSON)
    started_at = Column(DateTime, nullable=False)
    completed_at = Column(DateTime)
    error_message = Column(Text)
    result_data = Column(JSON)
    created_at = Column(DateTime, default=func.now(), nullable=False)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<ScrapeJob(job_id='{self.job_id}', type='{self.job_type}', status='{self.status}')>"


class ScrapedContent(Base):
    __tablename__ = 'scraped_content'

    id = Column(Uuid, primary_key=True, default=generate_uuid7)
    source = Column(String(50), nullable=False, index=True)
    url = Column(String(2000), nullable=False)
    title = Column(String(500))
    content = Column(Text, nullable=False)
    raw_data = Column(Text, nullable=False)
    scraped_at = Column(DateTime, nullable=False, index=True)
    # "metadata" is reserved on declarative classes, so the attribute is renamed.
    extra = Column("metadata", JSON)
    # Traceability only; jobs and records are not linked by a foreign key.
    job_id = Column(String(100), index=True)
    created_at = Column(DateTime, default=func.now(), nullable=False)

    __table_args__ = (
        Index('ix_scraped_content_source_scraped_at', 'source', 'scraped_at'),
    )

    def __repr__(self):
        title = (self.title or "")[:30]
        return f"<ScrapedContent(id={self.id}, source='{self.source}', title='{title}...')>"
