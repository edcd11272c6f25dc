from __future__ import annotations

from typing import Any, Dict, Mapping

import altair as alt
import pandas as pd

alt.data_transformers.disable_max_rows()


def to_vega_spec(chart: alt.TopLevelMixin) -> Dict[str, Any]:
    """Convert an Altair chart into a Vega-Lite spec dict (JSON-serializable)."""
    return chart.to_dict()


def rolling_trend_chart(series: pd.DataFrame, labels: Mapping[str, str], *, y_title: str) -> alt.Chart:
    """Line chart of one or more rolling-average columns keyed by ``date``.

    Missing points (insufficient history) are left as gaps rather than zeros.
    """
    long_df = series.melt(id_vars="date", value_vars=list(labels), var_name="series", value_name="value")
    long_df["series"] = long_df["series"].map(dict(labels))
    hover = alt.selection_point(fields=["series"], on="mouseover", empty="all")
    return (
        alt.Chart(long_df)
        .mark_line(point={"filled": True, "size": 30})
        .encode(
            x=alt.X("date:T", title="Date", axis=alt.Axis(format="%d/%m", grid=False)),
            y=alt.Y("value:Q", title=y_title, axis=alt.Axis(format=".2f", gridDash=[4, 4], domain=False, ticks=False)),
            color=alt.Color("series:N", title="Series"),
            opacity=alt.condition(hover, alt.value(1), alt.value(0.2)),
            tooltip=[
                alt.Tooltip("date:T", title="Date", format="%d/%m/%Y"),
                alt.Tooltip("series:N", title="Series"),
                alt.Tooltip("value:Q", title="Avg / day", format=".2f"),
            ],
        )
        .add_params(hover)
        .properties(height=300)
    )
