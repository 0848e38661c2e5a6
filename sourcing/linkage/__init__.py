"""
Shipment Linkage
================
Links shipment-manifest shippers to canonical suppliers and maintains
per-product-code rollups.
"""

from sourcing.linkage.shipment_linkage import (
    ShipmentLinkageEngine,
    aggregate_shipments,
    find_best_supplier,
    run_shipment_linkage,
)

__all__ = [
    'ShipmentLinkageEngine',
    'aggregate_shipments',
    'find_best_supplier',
    'run_shipment_linkage',
]
