"""Chart generation using Plotly."""

from typing import List

import plotly.graph_objects as go

from ..simulation.runner import StepSnapshot

SECONDS_PER_DAY = 86_400

THEME = {
    "text": "#e8eaed",
    "text_secondary": "#9aa0a6",
    "grid": "rgba(30, 33, 36, 0.8)",
    "cyan": "#00d4ff",
    "cyan_fill": "rgba(0, 212, 255, 0.12)",
    "amber": "#ffab00",
    "red": "#ff5252",
    "green": "#00e676",
}

# Cycled across reward tokens
SERIES_COLORS = [THEME["green"], THEME["amber"], THEME["cyan"], THEME["red"]]


def apply_dark_layout(fig: go.Figure, title: str, x_title: str, y_title: str, showlegend: bool = True) -> None:
    """Apply the dark theme used by every chart."""
    fig.update_layout(
        title={
            "text": title,
            "x": 0,
            "xanchor": "left",
            "font": {"size": 11, "color": THEME["text_secondary"]}
        },
        xaxis_title=x_title,
        yaxis_title=y_title,
        hovermode="x unified",
        template="plotly_dark",
        height=340,
        margin=dict(l=50, r=20, t=40, b=40),
        showlegend=showlegend,
        legend=dict(orientation="h", yanchor="bottom", y=1.02, xanchor="left", x=0),
        font={"color": THEME["text"], "size": 11},
        xaxis=dict(gridcolor=THEME["grid"], zerolinecolor=THEME["grid"]),
        yaxis=dict(gridcolor=THEME["grid"], zerolinecolor=THEME["grid"])
    )


def _days(snapshots: List[StepSnapshot]) -> List[float]:
    if not snapshots:
        return []
    origin = snapshots[0].t
    return [(s.t - origin) / SECONDS_PER_DAY for s in snapshots]


def create_locked_chart(snapshots: List[StepSnapshot]) -> go.Figure:
    """Locked and weighted-locked supply over time."""
    days = _days(snapshots)

    fig = go.Figure()

    fig.add_trace(go.Scatter(
        x=days,
        y=[s.total_locked for s in snapshots],
        name='Locked',
        mode='lines',
        line=dict(color=THEME["cyan"], width=2),
        fill='tozeroy',
        fillcolor=THEME["cyan_fill"]
    ))

    fig.add_trace(go.Scatter(
        x=days,
        y=[s.total_locked_weighted for s in snapshots],
        name='Weighted',
        mode='lines',
        line=dict(color=THEME["amber"], width=2, dash='dot')
    ))

    fig.add_trace(go.Scatter(
        x=days,
        y=[s.treasury_balance for s in snapshots],
        name='Penalties',
        mode='lines',
        line=dict(color=THEME["red"], width=2, dash='dash')
    ))
    apply_dark_layout(fig, "Locked Supply", "Time (days)", "Base units")

    return fig


def create_rewards_chart(snapshots: List[StepSnapshot]) -> go.Figure:
    """Cumulative rewards paid out per reward token."""
    days = _days(snapshots)
    tokens = sorted(snapshots[-1].rewards_paid) if snapshots else []

    fig = go.Figure()
    for i, token in enumerate(tokens):
        fig.add_trace(go.Scatter(
            x=days,
            y=[s.rewards_paid.get(token, 0) for s in snapshots],
            name=token,
            mode='lines',
            line=dict(color=SERIES_COLORS[i % len(SERIES_COLORS)], width=2)
        ))
    apply_dark_layout(fig, "Rewards Paid", "Time (days)", "Base units")

    return fig
