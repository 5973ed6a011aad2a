from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, delete
from datetime import datetime
import logging
import json

from memorabilia.models.schemas import KeyValueRecord


class ReadRecord:
    @staticmethod
    async def read_value(key: str, session: AsyncSession):
        """Read the JSON value stored under the key

        Args:
            key (str): Record key

        Returns:
            Any: Decoded JSON value, None if the key is absent
        """
        async with session:
            stmt = select(KeyValueRecord).where(KeyValueRecord.record_key == key)
            result = await session.execute(stmt)
            result = result.scalars().first()

            if result is None:
                return None

            return json.loads(result.record_value)


class UpdateRecord:
    @staticmethod
    async def upsert_value(key: str, value, session: AsyncSession):
        """Create or replace the value stored under the key

        Args:
            key (str): Record key
            value (Any): JSON-compatible value
        """
        async with session:
            try:
                stmt = select(KeyValueRecord).where(KeyValueRecord.record_key == key)
                result = await session.execute(stmt)
                result = result.scalars().first()

                if result is None:
                    session.add(KeyValueRecord(record_key=key, record_value=json.dumps(value)))
                else:
                    result.record_value = json.dumps(value)
                    result.updated_at = datetime.now()
                await session.commit()
            except Exception as e:
                logging.error(f"Failed to write record {key}: {e}")
                await session.rollback()
                raise


class DeleteRecord:
    @staticmethod
    async def delete_value(key: str, session: AsyncSession):
        """Delete the value stored under the key, if any

        Args:
            key (str): Record key
        """
        async with session:
            try:
                stmt = delete(KeyValueRecord).where(KeyValueRecord.record_key == key)
                await session.execute(stmt)
                await session.commit()
            except Exception as e:
                logging.error(f"Failed to delete record {key}: {e}")
                await session.rollback()
                raise
