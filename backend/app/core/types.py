"""Shared column types and clock helpers for the ORM models"""
from datetime import datetime
import uuid

from sqlalchemy import TypeDecorator, String


def generate_uuid() -> str:
    """Generate a UUID string used as primary key for principals and analytics rows"""
    return str(uuid.uuid4())


def utcnow() -> datetime:
    """Naive UTC timestamp; every DateTime column stores naive UTC"""
    return datetime.utcnow()


class GUID(TypeDecorator):
    """UUID stored as VARCHAR(36) on every backend, so ids compare as plain strings"""
    impl = String(36)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        return dialect.type_descriptor(String(36))

    def process_bind_param(self, value, dialect):
        if value is not None:
            return str(value)
        return value

    def process_result_value(self, value, dialect):
        if value is not None:
            return str(value)
        return value
