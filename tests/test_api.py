"""
API contract tests.

History loading is monkeypatched so no request leaves the process.
"""

import json

import numpy as np
import pytest
from fastapi.testclient import TestClient

from stock_forecast.app_api import main as app_module
from stock_forecast.errors import (
    DataSourceError,
    InsufficientDataError,
    SymbolNotFoundError,
    TransientDataSourceError,
)
from stock_forecast.pipeline import ForecastRun

FAST_REQUEST = {
    "symbol": "7203",
    "window_size": 10,
    "epochs": 10,
    "batch_size": 16,
    "prediction_days": 5,
}


@pytest.fixture
def client():
    return TestClient(app_module.app)


@pytest.fixture
def fake_history(monkeypatch, random_walk_bars):
    def load_bars(code):
        return app_module.normalize_symbol(code), "TOYOTA MOTOR CORP", random_walk_bars

    monkeypatch.setattr(app_module, "load_bars", load_bars)
    return random_walk_bars


def _raise_on_load(monkeypatch, error):
    def load_bars(code):
        raise error

    monkeypatch.setattr(app_module, "load_bars", load_bars)


def test_health_endpoint(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_forecast_contract(client, fake_history):
    response = client.post("/forecast", json=FAST_REQUEST)
    assert response.status_code == 200, response.text

    data = response.json()
    assert data["symbol"] == "7203.T"
    assert data["company_name"] == "TOYOTA MOTOR CORP"
    assert data["regime"] == "iterative"
    assert data["feature_set"] == "close"
    assert data["n_bars"] == len(fake_history)
    assert data["last_close"] == pytest.approx(fake_history["close"].iloc[-1])
    assert len(data["points"]) == 5
    assert all(np.isfinite(p["price"]) for p in data["points"])
    assert data["points"][0]["date"] > fake_history["date"].iloc[-1].date().isoformat()
    assert data["rmse"] >= 0
    assert set(data["metrics"]) == {"rmse", "mae", "mape"}
    assert len(data["train_loss"]) == 10
    assert data["disclaimer"]


def test_forecast_direct_indicators(client, fake_history):
    body = {**FAST_REQUEST, "regime": "direct", "feature_set": "indicators", "prediction_days": 3}
    response = client.post("/forecast", json=body)

    assert response.status_code == 200, response.text
    assert len(response.json()["points"]) == 3


@pytest.mark.parametrize(
    "field,value",
    [
        ("window_size", 5),
        ("window_size", 61),
        ("epochs", 201),
        ("learning_rate", 0.5),
        ("batch_size", 8),
        ("prediction_days", 6),
        ("regime", "recursive"),
        ("symbol", "   "),
    ],
)
def test_out_of_range_parameters_rejected(client, fake_history, field, value):
    response = client.post("/forecast", json={**FAST_REQUEST, field: value})
    assert response.status_code == 422


@pytest.mark.parametrize(
    "error,status",
    [
        (SymbolNotFoundError("Symbol 'XXXX.T' not found"), 404),
        (TransientDataSourceError("Network error"), 503),
        (InsufficientDataError("Only 20 bars", n_bars=20, required=60), 422),
    ],
)
def test_data_errors_mapped_to_status(client, monkeypatch, error, status):
    _raise_on_load(monkeypatch, error)

    response = client.post("/forecast", json=FAST_REQUEST)

    assert response.status_code == status
    assert response.json()["error"] == type(error).__name__
    assert response.json()["detail"] == str(error)


def test_empty_partition_is_unprocessable(client, monkeypatch, make_bars):
    # 65 bars, window 60, horizon 5 -> a single direct window
    bars = make_bars(np.linspace(100, 130, 65))
    monkeypatch.setattr(app_module, "load_bars", lambda code: (code, code, bars))

    body = {**FAST_REQUEST, "window_size": 60, "regime": "direct"}
    response = client.post("/forecast", json=body)

    assert response.status_code == 422
    assert response.json()["error"] == "EmptyPartitionError"


def test_concurrent_run_rejected(client, fake_history, monkeypatch):
    class HeldLock:
        def locked(self):
            return True

    monkeypatch.setattr(app_module, "_run_lock", HeldLock())

    response = client.post("/forecast", json=FAST_REQUEST)

    assert response.status_code == 409
    assert response.json()["error"] == "RunInProgressError"


def test_lock_released_after_failure(client, monkeypatch, fake_history):
    _raise_on_load(monkeypatch, SymbolNotFoundError("unknown"))
    assert client.post("/forecast", json=FAST_REQUEST).status_code == 404

    monkeypatch.setattr(app_module, "load_bars", lambda code: (code, code, fake_history))
    assert client.post("/forecast", json=FAST_REQUEST).status_code == 200


def _ndjson(response):
    return [json.loads(line) for line in response.text.splitlines() if line.strip()]


def test_stream_progress_then_result(client, fake_history):
    response = client.post("/forecast/stream", json=FAST_REQUEST)
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("application/x-ndjson")

    lines = _ndjson(response)
    progress = [line for line in lines if line["type"] == "progress"]

    assert progress[0]["phase"] == "feature_engineering"
    assert progress[-1]["phase"] == "done"
    assert len([p for p in progress if p["loss"] is not None]) == 10
    assert lines[-1]["type"] == "result"
    assert len(lines[-1]["points"]) == 5


def test_stream_reports_run_failure(client, monkeypatch, make_bars):
    bars = make_bars(np.linspace(100, 130, 65))
    monkeypatch.setattr(app_module, "load_bars", lambda code: (code, code, bars))

    body = {**FAST_REQUEST, "window_size": 60, "regime": "direct"}
    lines = _ndjson(client.post("/forecast/stream", json=body))

    assert lines[-2]["phase"] == "failed"
    assert lines[-1] == {"type": "error", "error": "EmptyPartitionError", "detail": lines[-2]["message"]}


def test_stream_rejects_unknown_symbol_before_streaming(client, monkeypatch):
    _raise_on_load(monkeypatch, SymbolNotFoundError("unknown"))

    response = client.post("/forecast/stream", json=FAST_REQUEST)

    assert response.status_code == 404


@pytest.fixture
def closeless_bars(monkeypatch, make_bars):
    bars = make_bars(np.linspace(100, 130, 65))
    bars["close"] = np.nan
    monkeypatch.setattr(app_module, "load_bars", lambda code: (code, code, bars))
    return bars


def test_bars_without_close_are_unprocessable(client, closeless_bars):
    response = client.post("/forecast", json=FAST_REQUEST)

    assert response.status_code == 422
    assert response.json()["error"] == "InsufficientDataError"


def test_stream_reports_bars_without_close(client, closeless_bars):
    lines = _ndjson(client.post("/forecast/stream", json=FAST_REQUEST))

    assert lines[-2]["phase"] == "failed"
    assert lines[-1]["type"] == "error"
    assert lines[-1]["error"] == "InsufficientDataError"


def test_forecast_cancels_its_run(client, fake_history, monkeypatch):
    runs = []

    class RecordingRun(ForecastRun):
        def __init__(self, *args, **kwargs):
            super().__init__(*args, **kwargs)
            self.cancel_calls = 0
            runs.append(self)

        def cancel(self):
            self.cancel_calls += 1
            super().cancel()

    monkeypatch.setattr(app_module, "ForecastRun", RecordingRun)

    assert client.post("/forecast", json=FAST_REQUEST).status_code == 200
    assert len(runs) == 1
    assert runs[0].cancel_calls == 1


class _FakeSearchProvider:
    def __init__(self, matches):
        self.matches = matches
        self.queries = []

    def search_symbols(self, query):
        self.queries.append(query)
        return self.matches


class TestSymbolSearch:
    def setup_method(self):
        self.provider = _FakeSearchProvider(
            [{"symbol": "7203.T", "description": "TOYOTA MOTOR CORP", "type": "Common Stock"}]
        )

    def test_search(self, client, monkeypatch):
        monkeypatch.setattr(app_module, "search_provider", lambda: self.provider)

        response = client.get("/symbols/search", params={"q": " toyota "})

        assert response.status_code == 200
        assert response.json() == {
            "query": "toyota",
            "results": [{"symbol": "7203.T", "description": "TOYOTA MOTOR CORP", "type": "Common Stock"}],
        }
        assert self.provider.queries == [" toyota "]

    @pytest.mark.parametrize("params", [{}, {"q": ""}, {"q": "   "}])
    def test_blank_query_rejected(self, client, monkeypatch, params):
        monkeypatch.setattr(app_module, "search_provider", lambda: self.provider)

        assert client.get("/symbols/search", params=params).status_code == 422
        assert self.provider.queries == []

    def test_missing_api_key(self, client, monkeypatch):
        monkeypatch.setattr(app_module, "FINNHUB_API_KEY", "")

        response = client.get("/symbols/search", params={"q": "toyota"})

        assert response.status_code == 502
        assert response.json()["error"] == DataSourceError.__name__

    def test_provider_errors_mapped_to_status(self, client, monkeypatch):
        class FailingProvider:
            def search_symbols(self, query):
                raise TransientDataSourceError("Finnhub rate limit reached")

        monkeypatch.setattr(app_module, "search_provider", lambda: FailingProvider())

        response = client.get("/symbols/search", params={"q": "toyota"})

        assert response.status_code == 503
        assert response.json()["error"] == "TransientDataSourceError"
