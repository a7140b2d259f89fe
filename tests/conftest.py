"""
Shared pytest setup: render plots off-screen.
"""

import matplotlib

matplotlib.use("Agg")
