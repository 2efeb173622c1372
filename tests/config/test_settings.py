"""
Settings loading: defaults, overrides, environment and validation.
"""

from decimal import Decimal

import pytest
import yaml

from stock_config import StockSettings, get_settings
from stock_config.bridges import build_orchestrator
from stock_config.loader import load_settings, merge_settings, parse_settings
from stock_kernel.domain.movement import MovementLine
from stock_kernel.domain.uom import ConversionRecord


def _write(tmp_path, data, name="override.yaml"):
    path = tmp_path / name
    path.write_text(yaml.safe_dump(data))
    return path


class TestDefaults:

    def test_defaults_match_schema(self):
        assert load_settings(environ={}) == StockSettings()

    def test_get_settings_accepts_str_path(self, tmp_path, monkeypatch):
        monkeypatch.delenv("DATABASE_URL", raising=False)
        monkeypatch.delenv("STOCK_CONFIG_FILE", raising=False)
        path = _write(tmp_path, {"precision": {"money_places": 3}})

        assert get_settings(str(path)).precision.money_places == 3


class TestOverrides:

    def test_file_merges_over_defaults(self, tmp_path):
        path = _write(tmp_path, {"database": {"pool_size": 20}, "logging": {"level": "DEBUG"}})

        settings = load_settings(path, environ={})

        assert settings.database.pool_size == 20
        assert settings.database.max_overflow == 10
        assert settings.logging.level == "DEBUG"

    def test_file_from_environment(self, tmp_path):
        path = _write(tmp_path, {"workflow": {"issue_number_prefix": "WO"}})

        settings = load_settings(environ={"STOCK_CONFIG_FILE": str(path)})

        assert settings.workflow.issue_number_prefix == "WO"

    def test_database_url_from_environment_wins(self, tmp_path):
        path = _write(tmp_path, {"database": {"url": "sqlite:///file.db"}})

        settings = load_settings(path, environ={"DATABASE_URL": "postgresql://db/stock"})

        assert settings.database.url == "postgresql://db/stock"

    def test_empty_section_keeps_defaults(self):
        merged = merge_settings({"logging": {"level": "INFO"}}, {"logging": None})

        assert merged == {"logging": {"level": "INFO"}}


class TestValidation:

    @pytest.mark.parametrize(
        "data",
        [
            {"inventory": {}},
            {"database": {"hostname": "x"}},
            {"database": {"pool_size": "5"}},
            {"database": {"pool_size": True}},
            {"database": {"pool_size": 0}},
            {"database": {"max_overflow": -1}},
            {"database": {"url": "  "}},
            {"logging": {"level": "LOUD"}},
            {"precision": {"money_places": 12}},
            {"workflow": {"transfer_number_prefix": ""}},
            {"workflow": {"exclude_expired_batches": "yes"}},
        ],
    )
    def test_invalid_settings_refused(self, data):
        with pytest.raises(ValueError):
            parse_settings(data)

    def test_non_mapping_file_refused(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")

        with pytest.raises(ValueError):
            load_settings(path, environ={})

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_settings(tmp_path / "absent.yaml", environ={})


class TestBridges:

    def test_orchestrator_uses_workflow_settings(
        self, tmp_path, session, deterministic_clock, company, technician, test_actor_id
    ):
        path = _write(
            tmp_path,
            {"workflow": {"issue_number_prefix": "WO"}, "precision": {"money_places": 3}},
        )
        settings = load_settings(path, environ={})
        orchestrator = build_orchestrator(
            settings, session, clock=deterministic_clock, auto_commit=False
        )
        item = orchestrator.register_item(
            name="Grease",
            category="Consumables",
            base_uom="G",
            actor_id=test_actor_id,
            conversions=[ConversionRecord("KG", "G", Decimal("1000"))],
        )
        orchestrator.record_receipt(
            location=company,
            item_id=item.id,
            batch_no="GR-1",
            quantity=Decimal("1"),
            uom="KG",
            rate_per_unit=Decimal("0.0125"),
            actor_id=test_actor_id,
        )

        issue = orchestrator.issue_material(
            from_location=company,
            to_location=technician,
            lines=[MovementLine(item.id, Decimal("0.1"), "KG")],
            actor_id=test_actor_id,
        )

        assert issue.issue_no.startswith("WO-")
        assert issue.items[0].base_amount == Decimal("1.250")
