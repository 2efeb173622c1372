"""Transactional scopes: atomic() savepoints and session_scope() units of work."""

import pytest

from stock_kernel.db import engine as engine_module
from stock_kernel.db.engine import atomic, get_session, session_scope
from stock_kernel.models.item import Item
from stock_kernel.services.item_service import ItemService


class TestAtomic:

    def test_failure_inside_scope_undoes_its_writes(self, session, test_actor_id):
        kept = ItemService(session).register_item(
            name="Gasket", category="Spares", base_uom="PC", actor_id=test_actor_id
        )

        with pytest.raises(RuntimeError):
            with atomic(session):
                dropped = ItemService(session).register_item(
                    name="Valve", category="Spares", base_uom="PC", actor_id=test_actor_id
                )
                dropped_id = dropped.id
                raise RuntimeError("operation failed")

        assert session.get(Item, dropped_id) is None
        assert session.get(Item, kept.id) is not None

    def test_success_keeps_writes_uncommitted_in_session(self, session, test_actor_id):
        with atomic(session):
            item = ItemService(session).register_item(
                name="Hose", category="Spares", base_uom="M", actor_id=test_actor_id
            )

        assert session.get(Item, item.id).name == "Hose"


class TestSessionScope:

    def test_rollback_on_error(self, db_engine, test_actor_id):
        with pytest.raises(RuntimeError):
            with session_scope() as scoped:
                item = ItemService(scoped).register_item(
                    name="Filter", category="Spares", base_uom="PC", actor_id=test_actor_id
                )
                item_id = item.id
                raise RuntimeError("unit of work failed")

        check = get_session()
        try:
            assert check.get(Item, item_id) is None
        finally:
            check.close()


class TestUninitialized:

    def test_accessors_require_init(self, monkeypatch):
        monkeypatch.setattr(engine_module, "_engine", None)
        monkeypatch.setattr(engine_module, "_SessionFactory", None)

        with pytest.raises(RuntimeError, match="not initialized"):
            engine_module.get_engine()
        with pytest.raises(RuntimeError, match="not initialized"):
            engine_module.get_session()
