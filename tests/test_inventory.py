# tests/test_inventory.py
from datetime import date

import pytest

from model import PCCCCategory, PCCCMaterial, StockStatus
from service import InventoryService

svc = InventoryService()
TODAY = date(2024, 3, 11)


def test_scenario_good_then_low_stock(material):
    material.status = StockStatus.GOOD
    updated = svc.adjust_available(material, -650, TODAY)
    assert updated.available_quantity == 150
    assert updated.status == StockStatus.LOW_STOCK
    assert material.available_quantity == 800


@pytest.mark.parametrize("delta", [-10**9, -801, -1, 1, 199, 201, 10**9])
def test_adjust_never_leaves_bounds(material, delta):
    updated = svc.adjust_available(material, delta, TODAY)
    assert updated is not None
    assert 0 <= updated.available_quantity <= updated.total_quantity


def test_adjust_clamps_to_total(material):
    updated = svc.adjust_available(material, 10**6, TODAY)
    assert updated.available_quantity == 1000


def test_adjust_at_upper_bound_is_noop(material):
    material.available_quantity = material.total_quantity
    assert svc.adjust_available(material, 5, TODAY) is None
    assert material.available_quantity == 1000


def test_adjust_at_zero_is_noop(material):
    material.available_quantity = 0
    assert svc.adjust_available(material, -1, TODAY) is None


def test_adjust_by_zero_is_noop(material):
    assert svc.adjust_available(material, 0, TODAY) is None


def test_adjust_keeps_expired_status(material):
    material.inspection_expiry = "2023-12-01"
    updated = svc.adjust_available(material, -1, TODAY)
    assert updated.status == StockStatus.EXPIRED


def test_read_import_csv_drops_header_and_blank_lines():
    text = (
        "\ufeffname,category,spec,unit,total,available,min,expiry\n"
        "Sprinkler head,sprinkler,K=5.6,pcs,100,80,20,2025-01-01\n"
        "\n"
        ',,,,,,,\n'
        '"Gate valve, DN100",valve,OS&Y,pcs,10,10,2,\n'
    )
    rows = svc.read_import_csv(text)
    assert len(rows) == 2
    assert rows[0][0] == "Sprinkler head"
    assert rows[1][0] == "Gate valve, DN100"


def test_parse_import_batch_maps_columns():
    batch = svc.parse_import_batch(
        [["Sprinkler head", "Sprinkler", "K=5.6", "pcs", "100", "80", "20", "2025-01-01"]], TODAY
    )
    assert batch.errors == []
    (m,) = batch.records
    assert m.name == "Sprinkler head"
    assert m.category == PCCCCategory.SPRINKLER
    assert (m.total_quantity, m.available_quantity, m.min_stock_level) == (100, 80, 20)
    assert m.inspection_expiry == "2025-01-01"
    assert m.status == StockStatus.GOOD


def test_parse_import_skips_sparse_rows():
    batch = svc.parse_import_batch(
        [
            ["Only", "pipe", "", ""],
            ["Pipe DN50", "pipe", "Sch40", "m", "10"],
        ],
        TODAY,
    )
    assert [e.row for e in batch.errors] == [1]
    assert [m.name for m in batch.records] == ["Pipe DN50"]


def test_parse_import_bad_quantities_become_zero():
    batch = svc.parse_import_batch([["Hose", "cabinet", "20m", "roll", "many", "-3", "x"]], TODAY)
    (m,) = batch.records
    assert (m.total_quantity, m.available_quantity, m.min_stock_level) == (0, 0, 0)
    assert m.status == StockStatus.LOW_STOCK


@pytest.mark.parametrize(
    "text, expected",
    [("1000.0", 1000), ("12 pcs", 12), (" 7", 7), ("+4", 4), ("-3", 0), ("pcs 12", 0), ("", 0)],
)
def test_parse_import_reads_leading_integer(text, expected):
    batch = svc.parse_import_batch([["Valve", "valve", "DN50", "pcs", "5000", "0", text]], TODAY)
    assert batch.records[0].min_stock_level == expected


def test_parse_import_spreadsheet_decimals_keep_quantities():
    batch = svc.parse_import_batch(
        [["Valve", "valve", "DN50", "pcs", "1000.0", "800", "12 pcs", ""]], TODAY
    )
    (m,) = batch.records
    assert (m.total_quantity, m.available_quantity, m.min_stock_level) == (1000, 800, 12)
    assert m.status == StockStatus.GOOD


def test_parse_import_clamps_available_to_total():
    batch = svc.parse_import_batch([["Valve", "valve", "DN100", "pcs", "5", "9", "1"]], TODAY)
    assert batch.records[0].available_quantity == 5


def test_parse_import_unknown_category_is_reported():
    batch = svc.parse_import_batch([["Foam", "foam", "AFFF", "l", "10", "10", "1"]], TODAY)
    assert batch.records == []
    assert batch.errors[0].row == 1
    assert "foam" in batch.errors[0].reason


def test_parse_import_blank_category_defaults_to_pipe():
    batch = svc.parse_import_batch([["Main", "", "DN150", "m", "10", "10", "1"]], TODAY)
    assert batch.records[0].category == PCCCCategory.PIPE


def test_parse_import_status_uses_each_rows_expiry():
    batch = svc.parse_import_batch(
        [
            ["Panel", "alarm", "10 loop", "set", "5", "4", "1", "2023-12-01"],
            ["Panel B", "alarm", "2 loop", "set", "5", "4", "1", "not a date"],
        ],
        TODAY,
    )
    expired, undated = batch.records
    assert expired.status == StockStatus.EXPIRED
    assert undated.inspection_expiry is None
    assert undated.status == StockStatus.GOOD


def test_prepare_material_rejects_available_above_total(material):
    material.available_quantity = 1001
    with pytest.raises(ValueError):
        svc.prepare_material(material, TODAY)


def test_prepare_material_rejects_empty_name(material):
    material.name = "  "
    with pytest.raises(ValueError):
        svc.prepare_material(material, TODAY)


def test_inventory_stats():
    materials = [
        PCCCMaterial(total_quantity=10, available_quantity=1, min_stock_level=2),
        PCCCMaterial(total_quantity=20, available_quantity=20, min_stock_level=2,
                     inspection_expiry="2024-01-01"),
    ]
    stats = svc.inventory_stats(materials, TODAY)
    assert stats.material_count == 2
    assert stats.low_stock_count == 1
    assert stats.expired_count == 1
    assert stats.total_items == 30


def test_filter_materials_by_category_and_query():
    materials = [
        PCCCMaterial(name="Sprinkler head", category=PCCCCategory.SPRINKLER, spec="K=5.6"),
        PCCCMaterial(name="Gate valve", category=PCCCCategory.VALVE, spec="DN100"),
        PCCCMaterial(name="Check valve", category=PCCCCategory.VALVE, spec="DN50"),
    ]
    assert [m.name for m in svc.filter_materials(materials, PCCCCategory.VALVE)] == [
        "Gate valve", "Check valve",
    ]
    assert [m.name for m in svc.filter_materials(materials, query="dn50")] == ["Check valve"]
