"""Tabular XAI plugin."""

manifest = {
    "title": "Tabular XAI",
    "summary": (
        "Upload a CSV dataset, train one classification or regression model "
        "per dataset, and explain single predictions feature by feature."
    ),
    "category": "Machine Learning",
    "entrypoint": "plugins.tabular_xai.cli:main",
}


__all__ = ["manifest"]
