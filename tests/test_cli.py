import json

import pytest

from conftest import FakeInfoClient

from wallet_pnl import capture_snapshots, cli

WALLET = "0x00000000000000000000000000000000000000aa"


@pytest.fixture
def fake_client(monkeypatch, tmp_path, raw_fill, clearinghouse_state):
    monkeypatch.setenv("WALLET_PNL_CONFIG", str(tmp_path / "missing.toml"))
    client = FakeInfoClient(
        fills=[raw_fill("BTC", "A", 65000.0, 0.1, "2025-01-02", fee=5.0, closed_pnl=100.0, tid=1)],
        states={WALLET: clearinghouse_state(10_000.0)},
    )
    monkeypatch.setattr(cli, "HyperliquidInfoClient", lambda config: client)
    monkeypatch.setattr(capture_snapshots, "HyperliquidInfoClient", lambda config: client)
    return client


def test_cli_prints_daily_table(fake_client, db_path, capsys):
    code = cli.main([WALLET, "--start", "2025-01-01", "--end", "2025-01-03", "--db", str(db_path)])

    out = capsys.readouterr().out.splitlines()
    assert code == 0
    assert out[0].startswith("date ")
    assert out[1].startswith("2025-01-01 ")
    assert out[2].split()[-1] == "10000.00"
    assert out[-1] == "equity_mode=anchored_last_row"


def test_cli_writes_json(fake_client, db_path, tmp_path):
    out_path = tmp_path / "out" / "pnl.json"

    code = cli.main(
        [WALLET, "--start", "2025-01-01", "--end", "2025-01-03", "--db", str(db_path), "--json", "--out", str(out_path)]
    )

    payload = json.loads(out_path.read_text(encoding="utf-8"))
    assert code == 0
    assert payload["wallet"] == WALLET
    assert payload["summary"]["net_pnl_usd"] == pytest.approx(95.0)


def test_cli_reports_invalid_range(fake_client, db_path, capsys):
    code = cli.main([WALLET, "--start", "2025-01-05", "--end", "2025-01-01", "--db", str(db_path)])

    assert code == 2
    assert "Invalid date range" in capsys.readouterr().err


def test_snapshot_cli_tracks_and_captures(fake_client, db_path, capsys):
    code = capture_snapshots.main(["--wallet", WALLET, "--track", "--db", str(db_path)])

    assert code == 0
    assert "1 success, 0 failed" in capsys.readouterr().out


def test_snapshot_cli_reports_failures(fake_client, db_path, capsys):
    code = capture_snapshots.main(["--wallet", "0x00000000000000000000000000000000000000ff", "--db", str(db_path)])

    assert code == 1
    assert "0 success, 1 failed" in capsys.readouterr().out
