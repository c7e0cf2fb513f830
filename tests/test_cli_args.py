import sys
from pathlib import Path

import orjson
import pytest

import stipend_flights.cli as cli
from stipend_flights.models import PriceResult


@pytest.fixture
def no_logging(monkeypatch):
    # Avoid touching real logs/paths during tests
    monkeypatch.setattr(cli, "setup_logging", lambda *a, **k: None)


@pytest.fixture
def fake_single(monkeypatch):
    """Capture scrape_flight_price inputs and return a fixed live price"""
    calls = {"args": None}

    async def fake_scrape_flight_price(origin, destination, dates, *, include_budget=False, pricer=None, **kwargs):
        calls["args"] = {
            "origin": origin,
            "destination": destination,
            "dates": dates,
            "include_budget": include_budget,
            "pricer": pricer,
        }
        return PriceResult(price=812.0, source="Google Flights")

    monkeypatch.setattr(cli, "scrape_flight_price", fake_scrape_flight_price)
    return calls


@pytest.fixture
def fake_batch(monkeypatch):
    calls = {"queries": None}

    async def fake_scrape_many(queries, concurrency=2, pricer=None):
        calls["queries"] = list(queries)
        calls["concurrency"] = concurrency
        return [PriceResult(price=100.0 * (i + 1), source="Google Flights") for i in range(len(queries))]

    monkeypatch.setattr(cli, "scrape_many", fake_scrape_many)
    return calls


def _run_main_with_args(monkeypatch, tmp_path, argv):
    monkeypatch.setattr(
        sys,
        "argv",
        ["stipend-flights"] + argv + ["--cache", str(tmp_path / "cache.json"), "--log-file", str(tmp_path / "log.log")],
    )
    # main() is synchronous and internally runs asyncio.run(...)
    cli.main()


def _stdout_json(capsys):
    return orjson.loads(capsys.readouterr().out)


def test_single_route_with_dates(no_logging, fake_single, monkeypatch, tmp_path, capsys):
    args = [
        "--origin", "Seoul, South Korea",
        "--destination", "Barcelona, Spain",
        "--dates", "2025-03-10", "2025-03-15",
        "--no-artifacts",
    ]
    _run_main_with_args(monkeypatch, tmp_path, args)

    called = fake_single["args"]
    assert called["origin"] == "Seoul, South Korea"
    assert called["destination"] == "Barcelona, Spain"
    assert called["dates"] == {"outbound": "2025-03-10", "return": "2025-03-15"}
    assert called["include_budget"] is False
    assert called["pricer"].artifact_dir is None
    assert _stdout_json(capsys) == {"price": 812.0, "source": "Google Flights"}


def test_conference_window_becomes_travel_dates(no_logging, fake_single, monkeypatch, tmp_path, capsys):
    args = [
        "--origin", "Seoul",
        "--destination", "Tokyo",
        "--conference-start", "2025-03-31",
        "--conference-end", "2025-04-02",
        "--include-budget",
    ]
    _run_main_with_args(monkeypatch, tmp_path, args)

    called = fake_single["args"]
    assert called["dates"] == {"outbound": "2025-03-30", "return": "2025-04-03"}
    assert called["include_budget"] is True


def test_pricer_flags(no_logging, fake_single, monkeypatch, tmp_path, capsys):
    args = [
        "--origin", "Seoul",
        "--destination", "Tokyo",
        "--dates", "2025-03-10", "2025-03-15",
        "--no-amadeus",
        "--no-estimate",
        "--no-headless",
        "--artifacts", str(tmp_path / "artifacts"),
    ]
    _run_main_with_args(monkeypatch, tmp_path, args)

    pricer = fake_single["args"]["pricer"]
    assert pricer.use_amadeus is False
    assert pricer.estimate_on_failure is False
    assert pricer.headless is False
    assert pricer.artifact_dir == tmp_path / "artifacts"


def test_multiple_destinations_run_as_batch(no_logging, fake_batch, monkeypatch, tmp_path, capsys):
    args = [
        "--origin", "Seoul",
        "--destinations", "Tokyo", "Barcelona",
        "--dates", "2025-03-10", "2025-03-15",
        "--max-concurrent", "3",
        "--output", str(tmp_path / "out" / "prices.json"),
    ]
    _run_main_with_args(monkeypatch, tmp_path, args)

    queries = fake_batch["queries"]
    assert [q.destination for q in queries] == ["Tokyo", "Barcelona"]
    assert all(q.outbound_date == "2025-03-10" for q in queries)
    assert fake_batch["concurrency"] == 3

    expected = [
        {"price": 100.0, "source": "Google Flights", "destination": "Tokyo"},
        {"price": 200.0, "source": "Google Flights", "destination": "Barcelona"},
    ]
    assert _stdout_json(capsys) == expected
    assert orjson.loads((tmp_path / "out" / "prices.json").read_bytes()) == expected


def test_estimate_only_skips_live_sources(no_logging, fake_single, monkeypatch, tmp_path, capsys):
    args = [
        "--origin", "Seoul",
        "--destinations", "Tokyo", "Seoul, South Korea",
        "--dates", "2025-03-10", "2025-03-15",
        "--estimate-only",
    ]
    _run_main_with_args(monkeypatch, tmp_path, args)

    assert fake_single["args"] is None
    tokyo, home = _stdout_json(capsys)
    assert tokyo["source"] == "Distance-based calculation"
    assert tokyo["price"] > 0
    assert home == {"destination": "Seoul, South Korea", "price": 0.0, "source": "Distance-based (Same location)"}


def test_record_actual_price(no_logging, monkeypatch, tmp_path, capsys):
    args = [
        "--origin", "Seoul",
        "--destination", "Tokyo",
        "--dates", "2025-03-10", "2025-03-15",
        "--record-actual", "420",
    ]
    _run_main_with_args(monkeypatch, tmp_path, args)

    summary = _stdout_json(capsys)
    assert summary["actual_price"] == 420.0
    assert summary["error"] == pytest.approx(summary["model_price"] - 420.0)
    assert summary["distance_km"] > 1000


def test_missing_destination_errors_cleanly(no_logging, monkeypatch, tmp_path):
    with pytest.raises(SystemExit):
        _run_main_with_args(monkeypatch, tmp_path, ["--origin", "Seoul", "--dates", "2025-03-10", "2025-03-15"])


def test_missing_dates_fail(no_logging, fake_single, monkeypatch, tmp_path):
    with pytest.raises(SystemExit) as exc_info:
        _run_main_with_args(monkeypatch, tmp_path, ["--origin", "Seoul", "--destination", "Tokyo"])
    assert exc_info.value.code == 1
    assert fake_single["args"] is None


def test_invalid_date_fails_validation(no_logging, fake_single, monkeypatch, tmp_path):
    args = [
        "--origin", "Seoul",
        "--destination", "Tokyo",
        "--dates", "2025-13-40", "2025-03-15",  # invalid month/day
    ]
    with pytest.raises(SystemExit) as exc_info:
        _run_main_with_args(monkeypatch, tmp_path, args)
    assert exc_info.value.code == 1
    assert fake_single["args"] is None


def test_return_before_outbound_fails(no_logging, fake_single, monkeypatch, tmp_path):
    args = ["--origin", "Seoul", "--destination", "Tokyo", "--dates", "2025-03-15", "2025-03-10"]
    with pytest.raises(SystemExit):
        _run_main_with_args(monkeypatch, tmp_path, args)
    assert fake_single["args"] is None


def test_record_actual_same_city_fails(no_logging, monkeypatch, tmp_path):
    args = [
        "--origin", "Seoul",
        "--destination", "Seoul, South Korea",
        "--dates", "2025-03-10", "2025-03-15",
        "--record-actual", "100",
    ]
    with pytest.raises(SystemExit) as exc_info:
        _run_main_with_args(monkeypatch, tmp_path, args)
    assert exc_info.value.code == 1


def test_resolve_dates_normalizes():
    args = cli.build_parser().parse_args(["--origin", "Seoul", "--dates", "2025-3-1", "2025-3-9"])
    assert cli.resolve_dates(args) == ("2025-03-01", "2025-03-09")


def test_quiet_flag_reaches_logging(fake_single, monkeypatch, tmp_path, capsys):
    seen = {}
    monkeypatch.setattr(cli, "setup_logging", lambda **kwargs: seen.update(kwargs))
    _run_main_with_args(
        monkeypatch,
        tmp_path,
        ["--origin", "Seoul", "--destination", "Tokyo", "--dates", "2025-03-10", "2025-03-15", "--quiet"],
    )
    assert seen["quiet"] is True
    assert seen["verbose"] is False
    assert seen["log_file"] == tmp_path / "log.log"
    assert _stdout_json(capsys)["price"] == 812.0
