"""
Relational backend over SQLAlchemy.

Every committed mutation is published to a ChangeHub as an
insert/update/delete payload carrying the full new and old rows, which is
what the change stream of the hosted backend delivers as well.
"""
import copy
import uuid
from datetime import date, datetime, time, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

import structlog
from sqlalchemy import inspect as sa_inspect
from sqlalchemy import types as satypes
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from ..errors import NotFoundError, WriteError
from ..models.models import TABLE_MODELS
from ..realtime.hub import ChangeHub
from .provider import DataBackend, DOCUMENTS, Row, SHIFTS, SHIFT_WORKERS


logger = structlog.get_logger(__name__)

FunctionHandler = Callable[[Dict[str, Any]], Awaitable[Dict[str, Any]]]


def _parse_datetime(value: str) -> datetime:
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return datetime.fromisoformat(value)


def _coerce(column, value: Any) -> Any:
    if value is None or not isinstance(value, str):
        return value
    if isinstance(column.type, satypes.DateTime):
        return _parse_datetime(value)
    if isinstance(column.type, satypes.Date):
        return date.fromisoformat(value[:10])
    if isinstance(column.type, satypes.Time):
        return time.fromisoformat(value)
    return value


def _serialize(value: Any) -> Any:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            # SQLite drops the offset; everything is stored as UTC
            value = value.replace(tzinfo=timezone.utc)
        return value.isoformat()
    if isinstance(value, (date, time)):
        return value.isoformat()
    if isinstance(value, (dict, list)):
        return copy.deepcopy(value)
    return value


class _TableInfo:
    def __init__(self, model) -> None:
        self.model = model
        mapper = sa_inspect(model)
        # column name -> (attribute key, column)
        self.columns = {attr.columns[0].name: (attr.key, attr.columns[0]) for attr in mapper.column_attrs}

    def to_row(self, obj) -> Row:
        return {name: _serialize(getattr(obj, key)) for name, (key, _col) in self.columns.items()}

    def assign(self, obj, values: Row) -> None:
        for name, value in values.items():
            entry = self.columns.get(name)
            if entry is None or name == "id":
                continue
            key, column = entry
            setattr(obj, key, _coerce(column, value))

    def attribute(self, name: str):
        entry = self.columns.get(name)
        if entry is None:
            raise WriteError("select", f"Unknown column {name}")
        return getattr(self.model, entry[0]), entry[1]


class SqlBackend(DataBackend):
    def __init__(self, session_factory: sessionmaker, hub: Optional[ChangeHub] = None) -> None:
        self.session_factory = session_factory
        self.hub = hub
        self._tables = {name: _TableInfo(model) for name, model in TABLE_MODELS.items()}
        self._functions: Dict[str, FunctionHandler] = {}

    def register_function(self, name: str, handler: FunctionHandler) -> None:
        self._functions[name] = handler

    def _info(self, table: str, action: str) -> _TableInfo:
        info = self._tables.get(table)
        if info is None:
            raise WriteError(action, f"Unknown table {table}")
        return info

    def _publish(self, kind: str, table: str, new: Optional[Row], old: Optional[Row]) -> None:
        if self.hub is None:
            return
        self.hub.publish({"type": kind, "table": table, "new": new, "old": old})

    def _where(self, info: _TableInfo, filters: Optional[Dict[str, Any]]):
        clauses = []
        for key, value in (filters or {}).items():
            name, _, op = key.partition("__")
            attr, column = info.attribute(name)
            if op == "":
                clauses.append(attr == _coerce(column, value))
            elif op == "gte":
                clauses.append(attr >= _coerce(column, value))
            elif op == "lte":
                clauses.append(attr <= _coerce(column, value))
            elif op == "in":
                clauses.append(attr.in_([_coerce(column, v) for v in value]))
            elif op == "is":
                clauses.append(attr.is_(value))
            else:
                raise WriteError("select", f"Unsupported filter operator {op}")
        return clauses

    async def select(self, table, filters=None, order_by=None, descending=False) -> List[Row]:
        info = self._info(table, "select")
        db = self.session_factory()
        try:
            query = db.query(info.model).filter(*self._where(info, filters))
            if order_by:
                attr, _ = info.attribute(order_by)
                query = query.order_by(attr.desc() if descending else attr.asc())
            return [info.to_row(obj) for obj in query.all()]
        except SQLAlchemyError as e:
            raise WriteError("select", str(e)) from e
        finally:
            db.close()

    async def insert(self, table: str, row: Row) -> Row:
        return (await self.insert_many(table, [row]))[0]

    async def insert_many(self, table: str, rows: List[Row]) -> List[Row]:
        info = self._info(table, "insert")
        db = self.session_factory()
        try:
            objs = []
            for values in rows:
                obj = info.model(id=str(values.get("id") or uuid.uuid4()))
                info.assign(obj, values)
                db.add(obj)
                objs.append(obj)
            db.commit()
            for obj in objs:
                db.refresh(obj)
            created = [info.to_row(obj) for obj in objs]
        except SQLAlchemyError as e:
            db.rollback()
            raise WriteError("insert", str(e)) from e
        finally:
            db.close()
        for new in created:
            self._publish("insert", table, new, None)
        return created

    async def update(self, table: str, row_id: str, changes: Row) -> Row:
        rows = await self._update(table, [row_id], changes, single=True)
        return rows[0]

    async def update_many(self, table: str, row_ids: List[str], changes: Row) -> List[Row]:
        return await self._update(table, row_ids, changes, single=False)

    async def _update(self, table: str, row_ids: List[str], changes: Row, single: bool) -> List[Row]:
        info = self._info(table, "update")
        db = self.session_factory()
        try:
            objs = db.query(info.model).filter(info.model.id.in_(list(row_ids))).all()
            if single and not objs:
                raise NotFoundError("update", table, row_ids[0])
            olds = [info.to_row(obj) for obj in objs]
            now = datetime.now(timezone.utc)
            for obj in objs:
                info.assign(obj, changes)
                if "updated_at" in info.columns and "updated_at" not in changes:
                    obj.updated_at = now
            db.commit()
            for obj in objs:
                db.refresh(obj)
            news = [info.to_row(obj) for obj in objs]
        except SQLAlchemyError as e:
            db.rollback()
            raise WriteError("update", str(e)) from e
        finally:
            db.close()
        for new, old in zip(news, olds):
            self._publish("update", table, new, old)
        return news

    async def delete(self, table: str, row_id: str) -> Row:
        info = self._info(table, "delete")
        db = self.session_factory()
        cascaded: List[Row] = []
        try:
            obj = db.query(info.model).filter(info.model.id == row_id).first()
            if obj is None:
                raise NotFoundError("delete", table, row_id)
            old = info.to_row(obj)
            if table == SHIFTS:
                workers = self._tables[SHIFT_WORKERS]
                for worker in db.query(workers.model).filter(workers.model.shift_id == row_id).all():
                    cascaded.append(workers.to_row(worker))
                    db.delete(worker)
            db.delete(obj)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise WriteError("delete", str(e)) from e
        finally:
            db.close()
        for worker_row in cascaded:
            self._publish("delete", SHIFT_WORKERS, None, worker_row)
        self._publish("delete", table, None, old)
        return old

    async def invoke(self, function: str, body: Dict[str, Any]) -> Dict[str, Any]:
        handler = self._functions.get(function)
        if handler is None:
            raise WriteError(function, f"Function {function} is not available")
        return await handler(body)

    async def ingest_document(self, row: Row) -> Row:
        """Entry point for the classification pipeline: documents only arrive this way."""
        logger.info("backend.document_ingested", project_id=row.get("project_id"), filename=row.get("original_filename"))
        return await self.insert(DOCUMENTS, row)
