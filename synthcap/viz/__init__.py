"""Visualization helpers for synthesized captures."""

from .summary import render_summary, to_plot_rows

__all__ = ["render_summary", "to_plot_rows"]
