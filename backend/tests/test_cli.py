"""Tests for the command-line entry point."""
from __future__ import annotations

import pytest

from lexiconbuilder import cli


def test_parser_accepts_every_stage() -> None:
    parser = cli.build_parser()
    for stage in ("fetch", "parse", "normalize", "merge", "normalize-post", "map", "embed-lexicon"):
        args = parser.parse_args([stage])
        assert args.stage == stage
        assert args.force is False
        assert args.sources is None


def test_parser_options() -> None:
    args = cli.build_parser().parse_args(["fetch", "--force", "-v", "--source", "kaikki", "--source", "hurlebatte"])
    assert args.force is True
    assert args.verbose is True
    assert args.sources == ["kaikki", "hurlebatte"]


def test_unknown_stage_exits() -> None:
    with pytest.raises(SystemExit):
        cli.build_parser().parse_args(["bundle"])


def test_successful_stage_returns_zero(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[dict] = []

    async def runner(settings, *, force, sources):
        calls.append({"force": force, "sources": sources})

    monkeypatch.setitem(cli.RUNNERS, "merge", runner)

    assert cli.main(["merge", "--force"]) == 0
    assert calls == [{"force": True, "sources": None}]


def test_failing_stage_returns_one(monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture) -> None:
    async def runner(settings, *, force, sources):
        raise RuntimeError("boom")

    monkeypatch.setitem(cli.RUNNERS, "map", runner)

    assert cli.main(["map"]) == 1
    assert "Stage map failed" in caplog.text
