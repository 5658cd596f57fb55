# === MODULE PURPOSE ===
# Paper-trading core: simulated order execution, weighted-average-cost
# position accounting, and portfolio valuation against a market feed.

__version__ = "0.1.0"
