# SQLAlchemy models

from sqlalchemy import Column, String, JSON, Index
from sqlalchemy.orm import declarative_base

Base = declarative_base()

TABLE_NAME = "session_tracking"
GSI1_INDEX = "GSI1"

# Byte-wise ordering on Postgres so sort keys compare lexicographically
KeyString = String().with_variant(String(collation="C"), "postgresql")


class Item(Base):
    """One physical item of the single session-tracking table.

    Key attributes live in their own columns; everything else an item
    carries is kept verbatim in ``attributes``.
    """
    __tablename__ = TABLE_NAME

    pk = Column("PK", KeyString, primary_key=True)
    sk = Column("SK", KeyString, primary_key=True)
    gsi1pk = Column("GSI1PK", KeyString, nullable=True)
    gsi1sk = Column("GSI1SK", KeyString, nullable=True)
    item_type = Column("itemType", String, nullable=True, index=True)
    attributes = Column(JSON, nullable=False, default=dict)

    __table_args__ = (
        Index(GSI1_INDEX, "GSI1PK", "GSI1SK"),
    )
