"""HTTP API for the forecasting pipeline."""
