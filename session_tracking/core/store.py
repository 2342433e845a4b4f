"""
Key-value store client over the single session-tracking table.

Items are plain dicts. ``PK``/``SK`` form the primary key, ``GSI1PK``/``GSI1SK``
form the optional secondary index key, and every other attribute is stored
as-is. Queries always return items in ascending sort-key order.
"""

from typing import Any, AsyncIterator, Iterable, Optional

from sqlalchemy import and_, delete, or_, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
import structlog

from session_tracking.core.errors import InternalError, NotFoundError
from session_tracking.models.item import Base, Item, GSI1_INDEX

logger = structlog.get_logger()

Record = dict[str, Any]

# Attribute name -> Item column for the attributes kept outside the JSON blob
KEY_COLUMNS = {
    "PK": "pk",
    "SK": "sk",
    "GSI1PK": "gsi1pk",
    "GSI1SK": "gsi1sk",
    "itemType": "item_type",
}

# INSERT ... ON CONFLICT DO UPDATE per dialect
UPSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


class KeyValueStore:
    """get/put/query/update/delete primitives against one table and one index"""

    def __init__(
            self,
            session_factory: async_sessionmaker[AsyncSession],
            index_name: str = GSI1_INDEX
    ):
        self._session_factory = session_factory
        self.index_name = index_name

    async def create_tables(self) -> None:
        async with self._session_factory() as session:
            conn = await session.connection()
            await conn.run_sync(Base.metadata.create_all)
            await session.commit()

    async def put(self, item: Record) -> Record:
        """Upsert an item. Overwrites any existing item with the same key."""
        row = _to_row(item)
        try:
            async with self._session_factory() as session:
                await session.execute(_upsert(session, [row]))
                await session.commit()
        except SQLAlchemyError as e:
            logger.error("store_put_failed", pk=item["PK"], sk=item["SK"], error=str(e))
            raise InternalError("Failed to save item", e)

        logger.debug("store_put", pk=item["PK"], sk=item["SK"])
        return item

    async def get_item(self, pk: str, sk: str) -> Optional[Record]:
        try:
            async with self._session_factory() as session:
                row = await session.get(Item, (pk, sk))
                return _to_item(row) if row is not None else None
        except SQLAlchemyError as e:
            logger.error("store_get_failed", pk=pk, sk=sk, error=str(e))
            raise InternalError("Failed to retrieve item", e)

    async def query(
            self,
            pk: str,
            sk_prefix: Optional[str] = None,
            index_name: Optional[str] = None,
            limit: Optional[int] = None
    ) -> list[Record]:
        """
        Range query within one partition of the table or of the index

        Args:
            pk: Partition key value (``GSI1PK`` when querying the index)
            sk_prefix: Only return items whose sort key starts with this prefix
            index_name: Query the secondary index instead of the table
            limit: Maximum number of items, taken from the start of the range

        Returns:
            Items in ascending sort-key order
        """
        if index_name is None:
            pk_column, sk_column = Item.pk, Item.sk
            ordering = (Item.sk,)
        elif index_name == self.index_name:
            pk_column, sk_column = Item.gsi1pk, Item.gsi1sk
            ordering = (Item.gsi1sk, Item.pk, Item.sk)
        else:
            raise ValueError(f"Unknown index: {index_name}")

        stmt = select(Item).where(pk_column == pk)
        if sk_prefix:
            stmt = stmt.where(sk_column.startswith(sk_prefix, autoescape=True))
        stmt = stmt.order_by(*ordering)
        if limit is not None:
            stmt = stmt.limit(limit)

        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                items = [_to_item(row) for row in result.scalars()]
        except SQLAlchemyError as e:
            logger.error(
                "store_query_failed",
                pk=pk,
                sk_prefix=sk_prefix,
                index_name=index_name,
                error=str(e)
            )
            raise InternalError("Failed to query items", e)

        logger.debug("store_query", pk=pk, index_name=index_name, count=len(items))
        return items

    async def update(self, pk: str, sk: str, fields: Record) -> Record:
        """
        Set individual attributes of an existing item

        A ``None`` value removes the attribute. Raises NotFoundError when no
        item exists under the key.
        """
        if "PK" in fields or "SK" in fields:
            raise ValueError("Key attributes cannot be updated")

        try:
            async with self._session_factory() as session:
                row = await session.get(Item, (pk, sk))
                if row is None:
                    raise NotFoundError(f"Item not found: {pk} / {sk}", "item")

                attributes = dict(row.attributes or {})
                for name, value in fields.items():
                    if name in KEY_COLUMNS:
                        setattr(row, KEY_COLUMNS[name], value)
                    elif value is None:
                        attributes.pop(name, None)
                    else:
                        attributes[name] = value
                row.attributes = attributes

                item = _to_item(row)
                await session.commit()
        except SQLAlchemyError as e:
            logger.error("store_update_failed", pk=pk, sk=sk, error=str(e))
            raise InternalError("Failed to update item", e)

        logger.debug("store_update", pk=pk, sk=sk, fields=list(fields))
        return item

    async def delete(self, pk: str, sk: str) -> bool:
        """Delete an item. Returns False if there was nothing to delete."""
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    delete(Item).where(Item.pk == pk, Item.sk == sk)
                )
                await session.commit()
        except SQLAlchemyError as e:
            logger.error("store_delete_failed", pk=pk, sk=sk, error=str(e))
            raise InternalError("Failed to delete item", e)

        logger.debug("store_delete", pk=pk, sk=sk)
        return result.rowcount > 0

    async def batch_put(self, items: Iterable[Record], max_batch_size: int = 25) -> int:
        """Bulk upsert in chunks of at most ``max_batch_size`` items per request"""
        items = list(items)
        written = 0

        for start in range(0, len(items), max_batch_size):
            chunk = [_to_row(item) for item in items[start:start + max_batch_size]]
            try:
                async with self._session_factory() as session:
                    await session.execute(_upsert(session, chunk))
                    await session.commit()
            except SQLAlchemyError as e:
                logger.error("store_batch_put_failed", written=written, error=str(e))
                raise InternalError("Failed to batch write items", e)
            written += len(chunk)

        logger.info("store_batch_put", count=written)
        return written

    async def scan(self, page_size: int = 500) -> AsyncIterator[Record]:
        """Iterate over every item of the table, one page per round-trip"""
        last_key: Optional[tuple[str, str]] = None

        while True:
            stmt = select(Item).order_by(Item.pk, Item.sk).limit(page_size)
            if last_key is not None:
                last_pk, last_sk = last_key
                stmt = stmt.where(or_(
                    Item.pk > last_pk,
                    and_(Item.pk == last_pk, Item.sk > last_sk)
                ))

            try:
                async with self._session_factory() as session:
                    result = await session.execute(stmt)
                    page = [_to_item(row) for row in result.scalars()]
            except SQLAlchemyError as e:
                logger.error("store_scan_failed", last_key=last_key, error=str(e))
                raise InternalError("Failed to scan items", e)

            for item in page:
                yield item

            if len(page) < page_size:
                break
            last_key = (page[-1]["PK"], page[-1]["SK"])


def _to_row(item: Record) -> dict[str, Any]:
    """Insert values keyed by table column key"""
    if not item.get("PK") or not item.get("SK"):
        raise ValueError("Item must have PK and SK")

    mapped = Item.__mapper__.columns
    row = {mapped[column].key: item.get(name) for name, column in KEY_COLUMNS.items()}
    row[mapped["attributes"].key] = {
        name: value for name, value in item.items()
        if name not in KEY_COLUMNS and value is not None
    }
    return row


def _upsert(session: AsyncSession, rows: list[dict[str, Any]]):
    """Single-statement insert that overwrites an existing item with the same key"""
    dialect = session.get_bind().dialect.name
    if dialect not in UPSERTS:
        raise ValueError(f"Unsupported dialect for upserts: {dialect}")

    table = Item.__table__
    stmt = UPSERTS[dialect](table).values(rows)
    return stmt.on_conflict_do_update(
        index_elements=list(table.primary_key.columns),
        set_={
            column: stmt.excluded[column.key]
            for column in table.columns if not column.primary_key
        }
    )


def _to_item(row: Item) -> Record:
    item: Record = {}
    for name, column in KEY_COLUMNS.items():
        value = getattr(row, column)
        if value is not None:
            item[name] = value
    item.update(row.attributes or {})
    return item
