"""
Domain CPTs for the terminal: weather, operability, efficiency, terminal
state, operators and the delay chain.

Every table is built from a row generator keyed by parent *states*, so the
meaning of each row is independent of the mixed-radix layout ``build_cpt``
applies.

State conventions (1 is always the best state):
    Wind 1..3, Rain 1..4, Visibility 1..4       calm .. severe
    Crane_Operable 1=operable, 2=not operable
    Efficiency 1..10                            best .. worst bin
    *_Availability 1=High, 2=Medium, 3=Low
    *_Delay 1=Low, 2=Medium, 3=High
    Terminal_Busyness 1=Low, 2=Normal, 3=High
    Storage_Capacity_Level 1..3                 ample .. scarce
    Shift 1=Day, 2=Night; Strike 1=No, 2=Yes
"""
from typing import Dict, Sequence

import numpy as np

from terminalbn.cpd import CPD, StaticCPD, build_cpt, one_hot

WIND_PROBS = [0.917, 0.08, 0.003]
RAIN_PROBS = [0.3711, 0.3366, 0.2107, 0.0816]
VISIBILITY_PROBS = [0.8637, 0.0345, 0.0493, 0.0525]

WIND_EFFICIENCY = {1: 1.0, 2: 0.70, 3: 0.0}
RAIN_MULTIPLIER = {1: 1.0, 2: 0.95, 3: 0.85, 4: 0.7}
VISIBILITY_MULTIPLIER = {1: 1.0, 2: 0.95, 3: 0.85, 4: 0.7}

# score >= 0.9 -> bin 1 ... score < 0.1 -> bin 10
EFFICIENCY_CUTS = [0.1, 0.2, 0.3, 0.4, 0.5, 0.6, 0.7, 0.8, 0.9]
NUM_EFFICIENCY_BINS = 10

BUSYNESS_PROBS = [0.2, 0.6, 0.2]
STORAGE_PROBS = [0.2, 0.4, 0.4]
SHIFT_PROBS = [0.60, 0.40]
STRIKE_PROBS = [0.95, 0.05]

HIGH_DELAY = [0.0, 0.0, 1.0]

# [availability][busyness]
HT_EMPTY_ROWS = {
    1: {1: [0.8, 0.15, 0.05], 2: [0.7, 0.2, 0.1], 3: [0.6, 0.3, 0.1]},
    2: {1: [0.6, 0.3, 0.1], 2: [0.5, 0.3, 0.2], 3: [0.3, 0.4, 0.3]},
    3: {1: [0.3, 0.3, 0.4], 2: [0.2, 0.3, 0.5], 3: [0.1, 0.3, 0.6]},
}

# [availability][HT empty delay] -> rows for efficiency bins <=3, <=7, >7
CRANE_ROWS = {
    1: {
        1: ([0.9, 0.1, 0.0], [0.8, 0.2, 0.0], [0.7, 0.3, 0.0]),
        2: ([0.7, 0.2, 0.1], [0.7, 0.25, 0.05], [0.5, 0.35, 0.15]),
        3: ([0.6, 0.2, 0.2], [0.45, 0.3, 0.25], [0.35, 0.4, 0.25]),
    },
    2: {
        1: ([0.2, 0.2, 0.6], [0.18, 0.2, 0.62], [0.1, 0.25, 0.65]),
        2: ([0.1, 0.25, 0.65], [0.05, 0.28, 0.67], [0.05, 0.25, 0.7]),
        3: ([0.0, 0.30, 0.7], [0.0, 0.28, 0.72], [0.0, 0.25, 0.75]),
    },
    3: {
        1: ([0.0, 0.2, 0.8], [0.0, 0.18, 0.82], [0.0, 0.15, 0.85]),
        2: ([0.0, 0.15, 0.85], [0.0, 0.13, 0.87], [0.0, 0.1, 0.9]),
        3: ([0.0, 0.1, 0.9], [0.0, 0.08, 0.92], [0.0, 0.05, 0.95]),
    },
}

# [availability][storage level]
YC_ROWS = {
    1: {1: [0.8, 0.15, 0.05], 2: [0.7, 0.2, 0.1], 3: [0.6, 0.25, 0.15]},
    2: {1: [0.5, 0.3, 0.2], 2: [0.4, 0.4, 0.2], 3: [0.3, 0.4, 0.3]},
    3: {1: [0.2, 0.3, 0.5], 2: [0.1, 0.3, 0.6], 3: [0.0, 0.2, 0.8]},
}

# [availability][yard crane delay]
HT_LOADED_ROWS = {
    1: {1: [0.9, 0.1, 0.0], 2: [0.8, 0.2, 0.0], 3: [0.7, 0.2, 0.1]},
    2: {1: [0.6, 0.3, 0.1], 2: [0.5, 0.3, 0.2], 3: [0.4, 0.4, 0.2]},
    3: {1: [0.3, 0.3, 0.4], 2: [0.2, 0.3, 0.5], 3: [0.0, 0.2, 0.8]},
}

# [crane delay][HT loaded delay]
TOTAL_ROWS = {
    1: {1: [0.9, 0.1, 0.0], 2: [0.55, 0.35, 0.1], 3: [0.35, 0.45, 0.2]},
    2: {1: [0.1, 0.4, 0.5], 2: [0.1, 0.35, 0.55], 3: [0.05, 0.30, 0.65]},
    3: {1: [0.0, 0.1, 0.9], 2: [0.0, 0.05, 0.95], 3: [0.0, 0.0, 1.0]},
}

# [shift] when there is no strike; a strike forces Low operator availability.
OPERATOR_ROWS = {
    "QC": {1: [0.90, 0.10, 0.00], 2: [0.85, 0.15, 0.00]},
    "HT": {1: [0.95, 0.05, 0.00], 2: [0.90, 0.10, 0.00]},
    "YC": {1: [0.95, 0.05, 0.00], 2: [0.90, 0.10, 0.00]},
}


def efficiency_score(wind: int, rain: int, visibility: int) -> float:
    return WIND_EFFICIENCY[wind] * RAIN_MULTIPLIER[rain] * VISIBILITY_MULTIPLIER[visibility]


def efficiency_bin(score: float) -> int:
    """Map a multiplicative efficiency score to bins 1 (>=0.9) .. 10 (<0.1)."""
    return NUM_EFFICIENCY_BINS - int(np.digitize([score], EFFICIENCY_CUTS, right=False)[0])


def _efficiency_group(eff: int) -> int:
    if eff <= 3:
        return 0
    if eff <= 7:
        return 1
    return 2


def weather_cpds(tolerance: float = 1e-6) -> Dict[str, CPD]:
    d: Dict[str, CPD] = {}
    d["Wind"] = StaticCPD("Wind", WIND_PROBS, tolerance)
    d["Rain"] = StaticCPD("Rain", RAIN_PROBS, tolerance)
    d["Visibility"] = StaticCPD("Visibility", VISIBILITY_PROBS, tolerance)

    # Strong wind stops the quay cranes.
    d["Crane_Operable"] = build_cpt(
        "Crane_Operable", ["Wind"], [3], lambda w: one_hot(2 if w == 3 else 1, 2), tolerance
    )

    def efficiency_row(op, w, r, v):
        if op == 2:
            return one_hot(NUM_EFFICIENCY_BINS, NUM_EFFICIENCY_BINS)
        return one_hot(efficiency_bin(efficiency_score(w, r, v)), NUM_EFFICIENCY_BINS)

    d["Efficiency"] = build_cpt(
        "Efficiency",
        ["Crane_Operable", "Wind", "Rain", "Visibility"],
        [2, 3, 4, 4],
        efficiency_row,
        tolerance,
    )
    return d


def terminal_state_cpds(tolerance: float = 1e-6) -> Dict[str, CPD]:
    return {
        "Terminal_Busyness": StaticCPD("Terminal_Busyness", BUSYNESS_PROBS, tolerance),
        "Storage_Capacity_Level": StaticCPD("Storage_Capacity_Level", STORAGE_PROBS, tolerance),
    }


def operator_cpds(tolerance: float = 1e-6) -> Dict[str, CPD]:
    """Shift/strike primitives, operator availability and effective availability."""
    d: Dict[str, CPD] = {}
    d["Shift"] = StaticCPD("Shift", SHIFT_PROBS, tolerance)
    d["Strike"] = StaticCPD("Strike", STRIKE_PROBS, tolerance)
    d["Strike_Impact"] = build_cpt(
        "Strike_Impact", ["Strike"], [2], lambda s: one_hot(3 if s == 2 else 1, 3), tolerance
    )

    for eq, rows in OPERATOR_ROWS.items():
        name = f"Operator_Availability_{eq}"
        d[name] = build_cpt(
            name,
            ["Shift", "Strike"],
            [2, 2],
            lambda shift, strike, rows=rows: one_hot(3, 3) if strike == 2 else rows[shift],
            tolerance,
        )

    # Effective availability is the worse of equipment and operator states.
    for eq in ("QC", "HT", "YC"):
        name = f"{eq}_Availability_Effective"
        d[name] = build_cpt(
            name,
            [f"{eq}_Availability", f"Operator_Availability_{eq}"],
            [3, 3],
            lambda equip, oper: one_hot(max(equip, oper), 3),
            tolerance,
        )
    return d


def delay_cpds(
    qc_availability: str = "QC_Availability",
    yc_availability: str = "YC_Availability",
    ht_availability: str = "HT_Availability",
    strike_impact: bool = False,
    tolerance: float = 1e-6,
) -> Dict[str, CPD]:
    """
    Delay chain. With ``strike_impact`` every operational delay also depends on
    Strike_Impact, and impact state 3 forces High delay.
    """
    extra_parents: Sequence[str] = ["Strike_Impact"] if strike_impact else []
    extra_cards: Sequence[int] = [3] if strike_impact else []

    def with_strike(rows_fn):
        if not strike_impact:
            return rows_fn
        return lambda *states: HIGH_DELAY if states[-1] == 3 else rows_fn(*states[:-1])

    d: Dict[str, CPD] = {}
    d["HT_Delay_Empty"] = build_cpt(
        "HT_Delay_Empty",
        [ht_availability, "Terminal_Busyness", *extra_parents],
        [3, 3, *extra_cards],
        with_strike(lambda avail, busy: HT_EMPTY_ROWS[avail][busy]),
        tolerance,
    )

    def crane_row(oper, avail, ht, eff):
        if oper == 2:
            return HIGH_DELAY
        return CRANE_ROWS[avail][ht][_efficiency_group(eff)]

    d["Crane_Delay"] = build_cpt(
        "Crane_Delay",
        ["Crane_Operable", qc_availability, "HT_Delay_Empty", "Efficiency", *extra_parents],
        [2, 3, 3, NUM_EFFICIENCY_BINS, *extra_cards],
        with_strike(crane_row),
        tolerance,
    )
    d["Yard_Crane_Delay"] = build_cpt(
        "Yard_Crane_Delay",
        [yc_availability, "Storage_Capacity_Level", *extra_parents],
        [3, 3, *extra_cards],
        with_strike(lambda avail, storage: YC_ROWS[avail][storage]),
        tolerance,
    )
    d["HT_Delay_Loaded"] = build_cpt(
        "HT_Delay_Loaded",
        [ht_availability, "Yard_Crane_Delay", *extra_parents],
        [3, 3, *extra_cards],
        with_strike(lambda avail, yc: HT_LOADED_ROWS[avail][yc]),
        tolerance,
    )
    d["Total_Delay"] = build_cpt(
        "Total_Delay",
        ["Crane_Delay", "HT_Delay_Loaded"],
        [3, 3],
        lambda c, h: TOTAL_ROWS[c][h],
        tolerance,
    )
    return d


def base_cpds(tolerance: float = 1e-6) -> Dict[str, CPD]:
    """Weather, terminal state and delays driven directly by equipment availability."""
    d: Dict[str, CPD] = {}
    d.update(weather_cpds(tolerance))
    d.update(terminal_state_cpds(tolerance))
    d.update(delay_cpds(tolerance=tolerance))
    return d


def full_cpds(tolerance: float = 1e-6) -> Dict[str, CPD]:
    """Base tables plus operators and strike; delays use effective availability."""
    d: Dict[str, CPD] = {}
    d.update(weather_cpds(tolerance))
    d.update(terminal_state_cpds(tolerance))
    d.update(operator_cpds(tolerance))
    d.update(
        delay_cpds(
            qc_availability="QC_Availability_Effective",
            yc_availability="YC_Availability_Effective",
            ht_availability="HT_Availability_Effective",
            strike_impact=True,
            tolerance=tolerance,
        )
    )
    return d
