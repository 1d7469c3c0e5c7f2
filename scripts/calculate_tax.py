#!/usr/bin/env python3
"""
Calculate order tax against a YAML configuration snapshot.

Usage:
    python scripts/calculate_tax.py --snapshot rates.yaml --request order.json
    python scripts/calculate_tax.py --snapshot rates.yaml --request order.json --estimate 100.00
    python scripts/calculate_tax.py --snapshot rates.yaml --request order.json --validate-only

The request is the JSON wire format (see tax_modules.calculation.wire).
Results are printed as JSON on stdout; structured logs go to stderr.

Exit codes:
    0  success
    1  other tax kernel error (configuration, repository)
    2  invalid request or address not serviceable
"""

import argparse
import json
import sys
from decimal import Decimal, InvalidOperation
from pathlib import Path

# Add project root to path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from tax_kernel.exceptions import (
    JurisdictionError,
    RequestValidationError,
    TaxKernelError,
)
from tax_kernel.logging_config import configure_logging
from tax_modules.calculation.config import (
    TaxCalculationConfig,
    load_config,
    load_snapshot,
)
from tax_modules.calculation.service import TaxCalculationService
from tax_modules.calculation.wire import parse_request_json, result_to_dict


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Calculate sales/VAT tax for an order against a configuration snapshot.",
    )
    parser.add_argument("--snapshot", type=Path, required=True,
                        help="YAML snapshot with jurisdictions, rates and exemptions")
    parser.add_argument("--request", type=Path, required=True,
                        help="JSON calculation request")
    parser.add_argument("--config", type=Path, default=None,
                        help="YAML calculation settings")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--estimate", metavar="SUBTOTAL", default=None,
                      help="Estimate tax on SUBTOTAL for the request's shipping address")
    mode.add_argument("--validate-only", action="store_true",
                      help="Only report whether the shipping address is serviceable")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    config = load_config(args.config) if args.config else TaxCalculationConfig.with_defaults()
    configure_logging(level=config.log_level)

    snapshot = load_snapshot(args.snapshot)
    service = TaxCalculationService(
        snapshot.jurisdictions,
        snapshot.rates,
        snapshot.exemptions,
        config=config,
    )

    try:
        request = parse_request_json(args.request.read_text())
        address = request.shipping_address
        if args.validate_only:
            if address is None:
                raise RequestValidationError("shippingAddress is required", field="shippingAddress")
            output = {"serviceable": service.validate_address(address)}
        elif args.estimate is not None:
            if address is None:
                raise RequestValidationError("shippingAddress is required", field="shippingAddress")
            try:
                subtotal = Decimal(args.estimate)
            except InvalidOperation:
                raise RequestValidationError(
                    f"Invalid estimate subtotal: {args.estimate}", field="estimate",
                ) from None
            output = {"estimatedTax": str(service.estimate_tax(address, subtotal))}
        else:
            output = result_to_dict(service.calculate(request))
    except (RequestValidationError, JurisdictionError) as exc:
        print(json.dumps({"error": exc.code, "message": str(exc)}), file=sys.stderr)
        return 2
    except TaxKernelError as exc:
        print(json.dumps({"error": exc.code, "message": str(exc)}), file=sys.stderr)
        return 1

    print(json.dumps(output, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
