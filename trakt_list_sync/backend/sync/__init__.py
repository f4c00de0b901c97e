"""List reconciliation: diffing, full-refresh policy and the sync passes."""
