"""Tests for scripts/calculate_tax.py."""

import json
from decimal import Decimal
from pathlib import Path

import pytest

from scripts.calculate_tax import build_parser, main

SAMPLES = Path(__file__).resolve().parents[2] / "scripts" / "samples"
SNAPSHOT = SAMPLES / "us_snapshot.yaml"
ORDER = SAMPLES / "order.json"


def _write_request(tmp_path: Path, payload: dict) -> Path:
    path = tmp_path / "request.json"
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


class TestCalculateTaxCli:
    def test_calculates_sample_order(self, capsys):
        """LA County order: 7.25% state + 2.25% district on items, 7.25% on shipping."""
        code = main(["--snapshot", str(SNAPSHOT), "--request", str(ORDER)])

        assert code == 0
        payload = json.loads(capsys.readouterr().out)
        assert payload["orderId"] == "ORD-1001"
        assert Decimal(payload["subtotal"]) == Decimal("100.00")
        assert Decimal(payload["shippingTax"]) == Decimal("0.725")
        assert Decimal(payload["totalTax"]) == Decimal("10.225")
        assert Decimal(payload["totalAmount"]) == Decimal("120.225")
        assert payload["jurisdictionsUsed"] == ["US-CA", "US-CA-LA"]
        assert [b["jurisdictionCode"] for b in payload["breakdowns"]] == ["US-CA", "US-CA-LA"]

    def test_settings_file(self, capsys):
        code = main([
            "--snapshot", str(SNAPSHOT),
            "--request", str(ORDER),
            "--config", str(SAMPLES / "settings.yaml"),
        ])

        assert code == 0
        assert "totalTax" in json.loads(capsys.readouterr().out)

    def test_estimate(self, capsys):
        code = main([
            "--snapshot", str(SNAPSHOT), "--request", str(ORDER), "--estimate", "200.00",
        ])

        assert code == 0
        assert Decimal(json.loads(capsys.readouterr().out)["estimatedTax"]) == Decimal("19.00")

    def test_invalid_estimate(self, capsys):
        code = main([
            "--snapshot", str(SNAPSHOT), "--request", str(ORDER), "--estimate", "lots",
        ])

        assert code == 2
        assert json.loads(capsys.readouterr().err)["error"] == "INVALID_REQUEST"

    def test_nan_estimate(self, capsys):
        code = main([
            "--snapshot", str(SNAPSHOT), "--request", str(ORDER), "--estimate", "NaN",
        ])

        assert code == 2
        assert json.loads(capsys.readouterr().err)["error"] == "NON_FINITE_AMOUNT"

    def test_validate_only(self, tmp_path, capsys):
        request = _write_request(tmp_path, {"shippingAddress": {"country": "FR"}, "items": []})

        code = main(["--snapshot", str(SNAPSHOT), "--request", str(request), "--validate-only"])

        assert code == 0
        assert json.loads(capsys.readouterr().out) == {"serviceable": False}

    def test_unserviceable_address(self, tmp_path, capsys):
        request = _write_request(tmp_path, {
            "shippingAddress": {"country": "ZZ"},
            "items": [{"sku": "X", "unitPrice": "10.00"}],
        })

        code = main(["--snapshot", str(SNAPSHOT), "--request", str(request)])

        assert code == 2
        error = json.loads(capsys.readouterr().err)
        assert error["error"] == "NO_APPLICABLE_JURISDICTIONS"

    def test_invalid_request(self, tmp_path, capsys):
        request = _write_request(tmp_path, {"shippingAddress": {"country": "US"}, "items": []})

        code = main(["--snapshot", str(SNAPSHOT), "--request", str(request)])

        assert code == 2
        assert json.loads(capsys.readouterr().err)["error"] == "NO_ITEMS_TO_CALCULATE"

    def test_modes_are_exclusive(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([
                "--snapshot", "s.yaml", "--request", "r.json",
                "--estimate", "1", "--validate-only",
            ])
