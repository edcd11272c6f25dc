"""Deal aggregation engine for the broker dashboard (UI-agnostic).

This package contains:
- deal upload decoding (JSON / Excel -> pandas) and field masks
- filter normalization
- broker, lead-source and weekly compute functions (JSON-serializable payloads)
- rolling-average time series
- chart helpers (Altair -> Vega-Lite spec dict)
- an explicit on-disk deal store owned by the caller
"""
