"""
Service Type Bonus Module
Calculates the bonus for exceeding per-service-type quotas, scaled by the
policy's service type multipliers
"""

import logging
from typing import List

import pandas as pd

from app.models.incentive_models import ServiceTypeBreakdown, ServiceTypeMultiplier, ServiceTypeTarget

logger = logging.getLogger(__name__)


def calculate_service_type_bonus(breakdown: List[ServiceTypeBreakdown],
                                 service_type_targets: List[ServiceTypeTarget],
                                 multipliers: List[ServiceTypeMultiplier]) -> float:
    """
    Sum excess bonuses across the service types in a breakdown

    For every service type with a target and count > target_count:
        (count - target_count) * bonus_per_excess * multiplier
    The multiplier defaults to 1.0. Service types without a target are skipped.

    Args:
        breakdown: Per-service-type counts from the performance metrics
        service_type_targets: Targets from the monthly target
        multipliers: Multipliers from the incentive policy

    Returns:
        Total service type bonus
    """
    if not breakdown or not service_type_targets:
        return 0.0

    breakdown_df = pd.DataFrame(
        [{"service_type": b.service_type, "count": b.count} for b in breakdown]
    )
    targets_df = pd.DataFrame(
        [{"service_type": t.service_type, "target_count": t.target_count,
          "bonus_per_excess": t.bonus_per_excess} for t in service_type_targets]
    ).drop_duplicates(subset="service_type", keep="first")

    merged = breakdown_df.merge(targets_df, on="service_type", how="inner")
    if merged.empty:
        return 0.0

    if multipliers:
        multipliers_df = pd.DataFrame(
            [{"service_type": m.service_type, "multiplier": m.multiplier} for m in multipliers]
        ).drop_duplicates(subset="service_type", keep="first")
        merged = merged.merge(multipliers_df, on="service_type", how="left")
        merged["multiplier"] = merged["multiplier"].fillna(1.0)
    else:
        merged["multiplier"] = 1.0

    merged["excess"] = (merged["count"] - merged["target_count"]).clip(lower=0)
    merged["bonus"] = merged["excess"] * merged["bonus_per_excess"] * merged["multiplier"]

    for row in merged[merged["excess"] > 0].to_dict("records"):
        logger.debug(f"Service type {row['service_type']}: {row['excess']} over target, "
                     f"bonus {row['bonus']:.2f} (x{row['multiplier']})")

    return float(merged["bonus"].sum())
