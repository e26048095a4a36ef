"""Export and chart helpers for scenario results."""
