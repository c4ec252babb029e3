"""
units - Assets the reserve can hold

collateral: the rebasing base asset and its rebase simulation
tranche: tranche assets, bonds and the deposit bond registry
"""

from .collateral import (
    create_collateral_unit,
    compute_rebase,
    compute_rebase_adjustments,
    RebaseAdjustment,
)
from .tranche import (
    create_tranche_unit,
    BondRegistry,
)
