from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.schema import Column
from sqlalchemy.types import String, DateTime, TEXT
from datetime import datetime


class Base(DeclarativeBase):
    pass


class KeyValueRecord(Base):
    __tablename__ = "key_value_record"
    record_key = Column(String, primary_key=True)
    record_value = Column(TEXT, nullable=False)  # JSON document
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)
